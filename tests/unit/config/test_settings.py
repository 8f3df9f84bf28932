"""Tests for governance configuration."""

import pytest
from pydantic import ValidationError

from family_privacy.config import Settings


class TestSettings:
    """Settings defaults, environment overrides and validation."""

    def test_defaults(self):
        """Test the regulatory defaults."""
        settings = Settings(_env_file=None)

        assert settings.deletion_grace_days == 30
        assert settings.min_retention_months == 12
        assert settings.max_retention_months == 84
        assert settings.default_retention_months == 84
        assert settings.default_inactivity_months == 24
        assert settings.failed_attempts_threshold == 6
        assert settings.temporary_access_max_days == 90
        assert settings.rate_limits["export"] == 20

    def test_environment_prefix(self, monkeypatch):
        """Test settings are read from PRIVACY_ variables."""
        monkeypatch.setenv("PRIVACY_DELETION_GRACE_DAYS", "14")
        monkeypatch.setenv("PRIVACY_AUDIT_TIMEZONE", "Pacific/Auckland")
        monkeypatch.setenv("PRIVACY_RATE_LIMITS", '{"read": 5}')

        settings = Settings(_env_file=None)

        assert settings.deletion_grace_days == 14
        assert settings.audit_timezone == "Pacific/Auckland"
        assert settings.rate_limits == {"read": 5}

    def test_invalid_log_format(self):
        """Test only console and json logging are accepted."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_format="xml")

    @pytest.mark.parametrize(
        "field", ["deletion_grace_days", "min_retention_months", "suspicious_window_days"]
    )
    def test_periods_must_be_positive(self, field):
        """Test zero periods are rejected."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **{field: 0})

    def test_default_retention_within_bounds(self):
        """Test the default retention must sit inside the bounds."""
        with pytest.raises(ValidationError, match="between 12 and 84"):
            Settings(_env_file=None, default_retention_months=100)

    def test_bounds_must_be_ordered(self):
        """Test the minimum cannot exceed the maximum."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, min_retention_months=90, default_retention_months=90)

    def test_is_production(self):
        """Test production detection."""
        assert Settings(_env_file=None, environment="staging").is_production
        assert not Settings(_env_file=None, environment="testing").is_production
