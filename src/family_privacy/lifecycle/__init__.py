"""Consent, retention and deletion lifecycle."""

from family_privacy.lifecycle.consent import (
    CommunicationSuppressor,
    ConsentManager,
    ConsentPropagator,
)
from family_privacy.lifecycle.deletion import DeletionLifecycleManager
from family_privacy.lifecycle.grant_expiry import GrantExpirySweeper
from family_privacy.lifecycle.purge import DataPurger

__all__ = [
    "CommunicationSuppressor",
    "ConsentManager",
    "ConsentPropagator",
    "DataPurger",
    "DeletionLifecycleManager",
    "GrantExpirySweeper",
]
