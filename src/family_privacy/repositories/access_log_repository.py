"""Append-only access log persistence."""

from datetime import datetime
from typing import Collection, Iterable, List, Optional

from family_privacy.interfaces.store import PRIVACY_AUDIT_LOGS
from family_privacy.models.access_log import AccessLog, LogFilters, PrivacyAction
from family_privacy.repositories.base import BaseRepository


class AccessLogRepository(BaseRepository):
    """Stores audit trail entries. Entries are only ever appended."""

    collection = PRIVACY_AUDIT_LOGS

    def append(self, entry: AccessLog) -> None:
        """Append an entry."""
        self._put(self.collection, entry.id, entry.model_dump(mode="json"))

    def query(
        self,
        owner_id: str,
        filters: Optional[LogFilters] = None,
        limit: Optional[int] = None,
    ) -> List[AccessLog]:
        """Get an account's entries matching filters, newest first."""
        filters = filters or LogFilters()
        documents = self._query(self.collection, lambda doc: doc.get("owner_id") == owner_id)
        entries = [
            entry
            for entry in (AccessLog.model_validate(doc) for doc in documents)
            if filters.matches(entry)
        ]
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        if limit is not None:
            entries = entries[:limit]
        return entries

    def query_by_addresses(
        self, addresses: Collection[str], since: datetime, until: Optional[datetime] = None
    ) -> List[AccessLog]:
        """Get entries from any account originating at the given addresses."""
        if not addresses:
            return []
        wanted = set(addresses)
        documents = self._query(self.collection, lambda doc: doc.get("ip_address") in wanted)
        return [
            entry
            for entry in (AccessLog.model_validate(doc) for doc in documents)
            if entry.timestamp >= since and (until is None or entry.timestamp <= until)
        ]

    def latest_activity(
        self, owner_id: str, actions: Iterable[PrivacyAction]
    ) -> Optional[datetime]:
        """Get the timestamp of an account's most recent activity."""
        wanted = {action.value for action in actions}
        documents = self._query(
            self.collection,
            lambda doc: doc.get("owner_id") == owner_id and doc.get("action") in wanted,
        )
        if not documents:
            return None
        return max(AccessLog.model_validate(doc).timestamp for doc in documents)
