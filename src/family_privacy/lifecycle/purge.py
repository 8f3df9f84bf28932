"""Scope-specific purge of account data from the document store."""

from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from dateutil import parser as date_parser

from family_privacy.core.exceptions import ValidationError
from family_privacy.interfaces.store import (
    HEALTH_DATA_COLLECTIONS,
    PRIVACY_SETTINGS,
    Document,
    Predicate,
)
from family_privacy.models.deletion import DeletionRequest, DeletionScope
from family_privacy.models.grants import GRANT_COLLECTIONS
from family_privacy.repositories.base import BaseRepository
from family_privacy.utils.dates import ensure_utc
from family_privacy.utils.logging import get_logger

logger = get_logger(__name__)

CHILDREN_COLLECTION = "children"

# Data types a data-type-specific deletion may name
PURGEABLE_DATA_TYPES: Tuple[str, ...] = tuple(
    c for c in HEALTH_DATA_COLLECTIONS if c != CHILDREN_COLLECTION
)

# Field holding the time a health record was created
RECORD_DATE_FIELD = "created_at"


def _record_date(document: Document) -> Optional[datetime]:
    value = document.get(RECORD_DATE_FIELD)
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(date_parser.isoparse(str(value)))


class DataPurger(BaseRepository):
    """Deletes the documents a deletion request covers.

    Audit log entries are never purged. Every deleted document is reported as
    ``collection:id``.
    """

    def purge(self, request: DeletionRequest) -> List[str]:
        """Purge the data covered by a request.

        Returns:
            Affected record references

        Raises:
            ValidationError: If the request's scope parameters are missing
            StoreUnavailable: If the store fails part way
        """
        handlers: Dict[DeletionScope, Callable[[DeletionRequest], List[str]]] = {
            DeletionScope.ALL_DATA: self._purge_all_data,
            DeletionScope.CHILD_SPECIFIC: self._purge_child,
            DeletionScope.DATE_RANGE: self._purge_date_range,
            DeletionScope.DATA_TYPE_SPECIFIC: self._purge_data_types,
        }
        affected = handlers[request.scope](request)
        logger.info(
            "data_purged",
            request_id=request.id,
            owner_id=request.owner_id,
            scope=request.scope.value,
            affected_records=len(affected),
        )
        return affected

    def child_exists(self, owner_id: str, child_id: str) -> bool:
        """Check whether the account has a child record with this id."""
        return bool(
            self._query(
                CHILDREN_COLLECTION,
                lambda doc: doc.get("owner_id") == owner_id and doc.get("id") == child_id,
            )
        )

    def _delete_matching(self, collection: str, predicate: Predicate) -> List[str]:
        affected = []
        for document in self._query(collection, predicate):
            doc_id = str(document["id"])
            self._delete(collection, doc_id)
            affected.append(f"{collection}:{doc_id}")
        return affected

    def _purge_all_data(self, request: DeletionRequest) -> List[str]:
        owner_id = request.owner_id
        affected: List[str] = []
        for collection in HEALTH_DATA_COLLECTIONS + tuple(GRANT_COLLECTIONS.values()):
            affected.extend(
                self._delete_matching(collection, lambda doc: doc.get("owner_id") == owner_id)
            )

        # Settings go last, they hold the legal holds checked before the purge
        if self._delete(PRIVACY_SETTINGS, owner_id):
            affected.append(f"{PRIVACY_SETTINGS}:{owner_id}")
        return affected

    def _purge_child(self, request: DeletionRequest) -> List[str]:
        if not request.child_id:
            raise ValidationError("Child-specific deletion requires a child_id")
        owner_id, child_id = request.owner_id, request.child_id

        affected: List[str] = []
        for collection in PURGEABLE_DATA_TYPES:
            affected.extend(
                self._delete_matching(
                    collection,
                    lambda doc: doc.get("owner_id") == owner_id
                    and doc.get("child_id") == child_id,
                )
            )
        affected.extend(
            self._delete_matching(
                CHILDREN_COLLECTION,
                lambda doc: doc.get("owner_id") == owner_id and doc.get("id") == child_id,
            )
        )
        return affected

    def _purge_date_range(self, request: DeletionRequest) -> List[str]:
        if request.start_date is None or request.end_date is None:
            raise ValidationError("Date range deletion requires start_date and end_date")
        owner_id = request.owner_id
        start, end = ensure_utc(request.start_date), ensure_utc(request.end_date)

        def in_range(doc: Document) -> bool:
            if doc.get("owner_id") != owner_id:
                return False
            recorded = _record_date(doc)
            return recorded is not None and start <= recorded <= end

        affected: List[str] = []
        for collection in PURGEABLE_DATA_TYPES:
            affected.extend(self._delete_matching(collection, in_range))
        return affected

    def _purge_data_types(self, request: DeletionRequest) -> List[str]:
        unknown = sorted(set(request.data_types) - set(PURGEABLE_DATA_TYPES))
        if not request.data_types or unknown:
            raise ValidationError(f"Unknown data types for deletion: {', '.join(unknown)}")
        owner_id = request.owner_id

        affected: List[str] = []
        for collection in sorted(set(request.data_types)):
            affected.extend(
                self._delete_matching(collection, lambda doc: doc.get("owner_id") == owner_id)
            )
        return affected
