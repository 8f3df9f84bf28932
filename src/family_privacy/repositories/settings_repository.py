"""Privacy settings persistence."""

from typing import List, Optional

from family_privacy.interfaces.store import PRIVACY_SETTINGS
from family_privacy.models.privacy import PrivacySettings
from family_privacy.repositories.base import BaseRepository


class PrivacySettingsRepository(BaseRepository):
    """Stores one privacy settings document per account owner."""

    collection = PRIVACY_SETTINGS

    def get(self, owner_id: str) -> Optional[PrivacySettings]:
        """Get an account's settings, or None if never saved."""
        document = self._get(self.collection, owner_id)
        if document is None:
            return None
        return PrivacySettings.model_validate(document)

    def save(self, settings: PrivacySettings) -> None:
        """Persist settings."""
        self._put(self.collection, settings.owner_id, settings.model_dump(mode="json"))

    def delete(self, owner_id: str) -> bool:
        """Remove an account's settings."""
        return self._delete(self.collection, owner_id)

    def list_with_automatic_deletion(self) -> List[PrivacySettings]:
        """Get settings of every account with automatic deletion enabled."""
        documents = self._query(
            self.collection,
            lambda doc: bool(doc.get("data_retention", {}).get("automatic_deletion")),
        )
        return [PrivacySettings.model_validate(doc) for doc in documents]
