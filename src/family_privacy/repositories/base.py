"""Base repository over the document store."""

from typing import Any, Callable, List, Optional, TypeVar

from family_privacy.core.exceptions import PrivacyGovernanceError, StoreUnavailable
from family_privacy.interfaces.store import Document, DocumentStore, Predicate
from family_privacy.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class BaseRepository:
    """Common document store access with uniform failure translation.

    Any error raised by a store implementation surfaces as ``StoreUnavailable``.
    """

    def __init__(self, store: DocumentStore):
        """Initialize repository with a document store."""
        self.store = store

    def _call(self, operation: str, func: Callable[..., T], *args: Any) -> T:
        try:
            return func(*args)
        except PrivacyGovernanceError:
            raise
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("document_store_error", operation=operation, error=str(e))
            raise StoreUnavailable(f"Document store {operation} failed: {e}") from e

    def _get(self, collection: str, doc_id: str) -> Optional[Document]:
        return self._call("get", self.store.get, collection, doc_id)

    def _put(self, collection: str, doc_id: str, document: Document) -> None:
        self._call("put", self.store.put, collection, doc_id, document)

    def _delete(self, collection: str, doc_id: str) -> bool:
        return self._call("delete", self.store.delete, collection, doc_id)

    def _query(self, collection: str, predicate: Optional[Predicate] = None) -> List[Document]:
        return self._call("query", self.store.query, collection, predicate)
