"""Notification and propagation sink interface."""

from abc import ABC, abstractmethod
from typing import Any, Dict


class NotificationSink(ABC):
    """Fire-and-forget destination for consent propagation messages."""

    name: str = "sink"

    @abstractmethod
    def send(self, message_type: str, payload: Dict[str, Any]) -> None:
        """Deliver a message.

        Args:
            message_type: Message type, e.g. ``consent_revoked``
            payload: Message body

        Raises:
            Exception: Any delivery failure; callers log and retry
        """
