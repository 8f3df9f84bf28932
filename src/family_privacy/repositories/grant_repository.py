"""Access grant persistence (the grant store)."""

from typing import List, Optional

from family_privacy.core.exceptions import NotFound
from family_privacy.models.grants import GRANT_COLLECTIONS, AccessGrant, parse_grant
from family_privacy.repositories.base import BaseRepository


class GrantRepository(BaseRepository):
    """Stores family member, provider and temporary grants in their own collections."""

    def list_for_grantee(self, owner_id: str, grantee_id: str) -> List[AccessGrant]:
        """Get every grant issued by ``owner_id`` to ``grantee_id``, any state."""
        grants: List[AccessGrant] = []
        for collection in GRANT_COLLECTIONS.values():
            documents = self._query(
                collection,
                lambda doc: doc.get("owner_id") == owner_id
                and doc.get("grantee_id") == grantee_id,
            )
            grants.extend(parse_grant(doc) for doc in documents)
        return grants

    def list_for_owner(self, owner_id: str, kind: Optional[str] = None) -> List[AccessGrant]:
        """Get every grant issued by an owner, optionally of one kind."""
        collections = [GRANT_COLLECTIONS[kind]] if kind else list(GRANT_COLLECTIONS.values())
        grants: List[AccessGrant] = []
        for collection in collections:
            documents = self._query(collection, lambda doc: doc.get("owner_id") == owner_id)
            grants.extend(parse_grant(doc) for doc in documents)
        return grants

    def list_active(self, kind: str) -> List[AccessGrant]:
        """Get every grant of a kind still flagged active, across owners."""
        documents = self._query(
            GRANT_COLLECTIONS[kind], lambda doc: bool(doc.get("is_active"))
        )
        return [parse_grant(doc) for doc in documents]

    def get(self, kind: str, grant_id: str) -> AccessGrant:
        """Get a grant by kind and id.

        Raises:
            NotFound: If the grant does not exist
        """
        if kind not in GRANT_COLLECTIONS:
            raise NotFound(f"Unknown grant kind: {kind}")
        document = self._get(GRANT_COLLECTIONS[kind], grant_id)
        if document is None:
            raise NotFound(f"Access record {grant_id} not found in {GRANT_COLLECTIONS[kind]}")
        return parse_grant(document)

    def find(self, grant_id: str) -> AccessGrant:
        """Get a grant by id whatever its kind.

        Raises:
            NotFound: If no collection holds the grant
        """
        for collection in GRANT_COLLECTIONS.values():
            document = self._get(collection, grant_id)
            if document is not None:
                return parse_grant(document)
        raise NotFound(f"Access record {grant_id} not found")

    def save(self, grant: AccessGrant) -> None:
        """Persist a grant."""
        self._put(GRANT_COLLECTIONS[grant.kind], grant.id, grant.model_dump(mode="json"))

    def delete(self, grant: AccessGrant) -> bool:
        """Remove a grant."""
        return self._delete(GRANT_COLLECTIONS[grant.kind], grant.id)
