"""Mock collaborators for the privacy governance test suite.

This package contains in-memory implementations of the external interfaces
only. Governance components always run as the real implementations.
"""

from .document_store import FailingDocumentStore, InMemoryDocumentStore
from .external_services import (
    FakeClock,
    JsonExportRenderer,
    RecordingSink,
    StaticIdentityProvider,
)

__all__ = [
    "FailingDocumentStore",
    "FakeClock",
    "InMemoryDocumentStore",
    "JsonExportRenderer",
    "RecordingSink",
    "StaticIdentityProvider",
]
