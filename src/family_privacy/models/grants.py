"""Access grant models.

Grants are a tagged union on ``kind``. Validity is always evaluated at read
time against the supplied clock value: a grant that is inactive, expired or
(for temporary grants) used up contributes no permissions, whatever its
permission list says.
"""

from datetime import datetime
from typing import Annotated, FrozenSet, Literal, Optional, Set, Union
from uuid import uuid4

from pydantic import BaseModel, Field, TypeAdapter

from family_privacy.models.privacy import FamilyRole, Permission
from family_privacy.utils.dates import UtcDatetime, utc_now


class GrantBase(BaseModel):
    """Fields shared by every grant kind."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    owner_id: str
    grantee_id: str
    grantee_name: Optional[str] = None
    grantee_email: Optional[str] = None
    permissions: Set[Permission] = Field(default_factory=set)
    is_active: bool = True
    granted_at: UtcDatetime = Field(default_factory=utc_now)
    granted_by: Optional[str] = None
    expires_at: Optional[UtcDatetime] = None
    last_accessed: Optional[UtcDatetime] = None
    revoked_at: Optional[UtcDatetime] = None
    revoked_by: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        """Check whether the grant has passed its expiry."""
        return self.expires_at is not None and self.expires_at <= now

    def is_valid(self, now: datetime) -> bool:
        """Check whether the grant currently confers permissions."""
        return self.is_active and not self.is_expired(now)

    def effective_permissions(self, now: datetime) -> FrozenSet[Permission]:
        """Get the permissions the grant confers right now."""
        if not self.is_valid(now):
            return frozenset()
        return frozenset(self.permissions)


class FamilyMemberGrant(GrantBase):
    """Standing access for a family member."""

    kind: Literal["family_member"] = "family_member"
    role: FamilyRole = FamilyRole.VIEWER


class ProviderGrant(GrantBase):
    """Access for a healthcare provider, optionally time-bounded."""

    kind: Literal["provider"] = "provider"
    provider_name: Optional[str] = None
    organization: Optional[str] = None
    access_method: Literal["magic_link", "direct_access"] = "direct_access"


class TemporaryGrant(GrantBase):
    """Time and use-count bounded access."""

    kind: Literal["temporary"] = "temporary"
    expires_at: UtcDatetime
    access_count: int = 0
    max_access_count: Optional[int] = None
    purpose: str = ""

    def is_exhausted(self) -> bool:
        """Check whether the grant has used all of its allowed accesses."""
        return (
            self.max_access_count is not None
            and self.access_count >= self.max_access_count
        )

    def is_valid(self, now: datetime) -> bool:
        """Temporary grants also stop conferring access once used up."""
        return super().is_valid(now) and not self.is_exhausted()


AccessGrant = Annotated[
    Union[FamilyMemberGrant, ProviderGrant, TemporaryGrant],
    Field(discriminator="kind"),
]

GRANT_ADAPTER: TypeAdapter = TypeAdapter(AccessGrant)

GRANT_COLLECTIONS = {
    "family_member": "family_access",
    "provider": "provider_access",
    "temporary": "temporary_access",
}


def parse_grant(document: dict) -> Union[FamilyMemberGrant, ProviderGrant, TemporaryGrant]:
    """Build the grant model matching the document's ``kind``."""
    return GRANT_ADAPTER.validate_python(document)
