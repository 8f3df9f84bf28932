"""Test configuration for the privacy governance engine.

Every test gets a fresh in-memory document store, a fixed clock and a fully
wired governance engine. Time never comes from the wall clock.
"""

from datetime import timedelta

import pytest

from family_privacy.config import Settings
from family_privacy.container import PrivacyGovernance
from family_privacy.interfaces import VerifiedIdentity
from family_privacy.models.privacy import (
    ChildPrivacySettings,
    FamilyRole,
    Permission,
)
from tests.mocks import (
    FakeClock,
    InMemoryDocumentStore,
    JsonExportRenderer,
    RecordingSink,
    StaticIdentityProvider,
)

OWNER_ID = "parent-001"


def pytest_configure(config):
    """Register custom markers for compliance-relevant tests."""
    config.addinivalue_line(
        "markers", "hipaa_required: mark test as covering HIPAA privacy behaviour"
    )
    config.addinivalue_line(
        "markers", "audit_required: mark test as requiring audit logging"
    )


@pytest.fixture
def settings():
    """Create settings isolated from the environment and .env files."""
    return Settings(_env_file=None, environment="testing", log_format="console")


@pytest.fixture
def clock():
    """Create a clock fixed on a weekday afternoon."""
    return FakeClock()


@pytest.fixture
def store():
    """Create an empty in-memory document store."""
    return InMemoryDocumentStore()


@pytest.fixture
def sink():
    """Create a notification sink recording propagated messages."""
    return RecordingSink()


@pytest.fixture
def identity_provider():
    """Create an identity provider knowing the account owner."""
    return StaticIdentityProvider(
        {
            "token-parent": VerifiedIdentity(
                user_id=OWNER_ID, display_name="Pat Parent", email="pat@family.org"
            )
        }
    )


@pytest.fixture
def governance(store, sink, identity_provider, settings, clock):
    """Create a fully wired governance engine."""
    engine = PrivacyGovernance(
        store,
        sinks=[sink],
        identity_provider=identity_provider,
        renderer=JsonExportRenderer(),
        settings=settings,
        clock=clock,
        sleep=lambda _: None,
    )
    yield engine
    engine.shutdown()


@pytest.fixture
def owner_id():
    """Account holder under test."""
    return OWNER_ID


@pytest.fixture
def owner_settings(governance, owner_id):
    """Create the owner's default settings."""
    return governance.privacy.get_settings(owner_id)


@pytest.fixture
def family_grant(governance, owner_id, owner_settings):
    """Grant a caregiver standing access."""
    return governance.privacy.grant_family_access(
        owner_id, "caregiver-001", FamilyRole.CAREGIVER, grantee_name="Casey Carer"
    )


@pytest.fixture
def temporary_grant(governance, owner_id, owner_settings, clock):
    """Grant a babysitter two views of symptoms."""
    return governance.privacy.grant_temporary_access(
        owner_id,
        "sitter@carers.org",
        [Permission.VIEW_SYMPTOMS],
        expires_at=clock() + timedelta(days=7),
        max_access_count=2,
        grantee_id="sitter-001",
    )


@pytest.fixture
def store_child(governance, owner_id):
    """Store child privacy settings directly, bypassing update validation."""

    def _store(child):
        settings = governance.privacy.get_settings(owner_id)
        settings.child_specific[child.child_id] = child
        governance.settings_repository.save(settings)
        return settings

    return _store


@pytest.fixture
def restricted_child(store_child):
    """Create a child whose data only the owner may see."""
    child = ChildPrivacySettings(
        child_id="child-1",
        restricted_access=True,
        allowed_users=set(),
        inherit_from_parent=False,
    )
    store_child(child)
    return child
