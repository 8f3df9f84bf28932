"""Document store interface consumed by the governance engine."""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

Document = Dict[str, Any]
Predicate = Callable[[Document], bool]

# Collection names
PRIVACY_SETTINGS = "privacy_settings"
DELETION_REQUESTS = "deletion_requests"
PRIVACY_AUDIT_LOGS = "privacy_audit_logs"
AUDIT_FAILURES = "audit_failures"

# Owner-scoped health data collections purged by deletion requests
HEALTH_DATA_COLLECTIONS = (
    "symptoms",
    "treatments",
    "vitals",
    "notes",
    "files",
    "medical_visits",
    "providers",
    "children",
)


class DocumentStore(ABC):
    """Abstract document store.

    Implementations must give read-your-writes consistency to the calling
    process and raise ``StoreUnavailable`` when the backend cannot be reached.
    Documents are plain JSON-compatible dictionaries.
    """

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        """Get a document by id.

        Args:
            collection: Collection name
            doc_id: Document id

        Returns:
            The document, or None if absent
        """

    @abstractmethod
    def put(self, collection: str, doc_id: str, document: Document) -> None:
        """Create or replace a document.

        Args:
            collection: Collection name
            doc_id: Document id
            document: Document body
        """

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> bool:
        """Delete a document.

        Args:
            collection: Collection name
            doc_id: Document id

        Returns:
            True if a document was removed
        """

    @abstractmethod
    def query(self, collection: str, predicate: Optional[Predicate] = None) -> List[Document]:
        """List documents matching a predicate.

        Args:
            collection: Collection name
            predicate: Filter over documents; all documents when None

        Returns:
            Matching documents, each carrying its document id under ``id``
        """
