"""Deletion request persistence."""

from typing import List

from family_privacy.core.exceptions import NotFound
from family_privacy.interfaces.store import DELETION_REQUESTS
from family_privacy.models.deletion import DeletionRequest, DeletionStatus
from family_privacy.repositories.base import BaseRepository


class DeletionRequestRepository(BaseRepository):
    """Stores deletion requests."""

    collection = DELETION_REQUESTS

    def get(self, request_id: str) -> DeletionRequest:
        """Get a deletion request.

        Raises:
            NotFound: If the request does not exist
        """
        document = self._get(self.collection, request_id)
        if document is None:
            raise NotFound(f"Deletion request {request_id} not found")
        return DeletionRequest.model_validate(document)

    def save(self, request: DeletionRequest) -> None:
        """Persist a deletion request."""
        self._put(self.collection, request.id, request.model_dump(mode="json"))

    def list_for_owner(self, owner_id: str) -> List[DeletionRequest]:
        """Get an account's deletion requests, newest first."""
        documents = self._query(self.collection, lambda doc: doc.get("owner_id") == owner_id)
        requests = [DeletionRequest.model_validate(doc) for doc in documents]
        return sorted(requests, key=lambda r: r.requested_at, reverse=True)

    def list_by_status(self, status: DeletionStatus) -> List[DeletionRequest]:
        """Get every request in a status, oldest first."""
        documents = self._query(self.collection, lambda doc: doc.get("status") == status.value)
        requests = [DeletionRequest.model_validate(doc) for doc in documents]
        return sorted(requests, key=lambda r: r.requested_at)
