"""Collaborator interfaces implemented outside the governance core."""

from family_privacy.interfaces.export import ExportRenderer
from family_privacy.interfaces.identity import IdentityProvider, VerifiedIdentity
from family_privacy.interfaces.notifications import NotificationSink
from family_privacy.interfaces.store import Document, DocumentStore, Predicate

__all__ = [
    "Document",
    "DocumentStore",
    "ExportRenderer",
    "IdentityProvider",
    "NotificationSink",
    "Predicate",
    "VerifiedIdentity",
]
