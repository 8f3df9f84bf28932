#!/usr/bin/env python
"""Setup configuration for the Family Health Privacy Governance Engine."""

from setuptools import find_packages, setup

setup(
    name="family-privacy",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "pydantic[email]>=2.5.0",
        "pydantic-settings>=2.0.0",
        "structlog>=23.2.0",
        "prometheus-client>=0.19.0",
        "python-dateutil>=2.8.2",
        "pandas>=2.0.0",
        "celery[redis]>=5.3.0",
        "tzdata>=2023.3",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
        ],
    },
)
