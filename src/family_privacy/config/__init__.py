"""Configuration module for the privacy governance engine."""

from family_privacy.config.base import Settings
from family_privacy.config.loader import get_settings

__all__ = ["Settings", "get_settings"]
