"""Test application settings loading from environment variables."""

import pytest
from pydantic import ValidationError

from clinical_gateway.config import Settings, get_settings


class TestSettings:
    """Test Settings defaults, environment overrides and validation."""

    def test_defaults(self, monkeypatch):
        """Defaults match the hosted FHIR store and the timeline policy."""
        for var in (
            "GOOGLE_CLOUD_PROJECT",
            "CLOUD_HEALTH_DATASET_ID",
            "CLOUD_HEALTH_FHIRSTORE_ID",
        ):
            monkeypatch.delenv(var, raising=False)

        settings = Settings(_env_file=None)

        assert settings.cloud_health_location == "europe-west4"
        assert settings.fhir_base_url == "https://healthcare.googleapis.com/v1"
        assert settings.fhir_request_timeout_seconds == 10.0
        assert settings.patient_link_ttl_minutes == 30
        assert settings.limited_profile_encounter_count == 5
        assert settings.max_clinical_record_page_size == 50
        assert settings.fhir_store_configured is False

    def test_environment_overrides(self, monkeypatch):
        """Environment variables are read case-insensitively."""
        monkeypatch.setenv("GOOGLE_CLOUD_PROJECT", "prod-project")
        monkeypatch.setenv("cloud_health_dataset_id", "clinical")
        monkeypatch.setenv("CLOUD_HEALTH_FHIRSTORE_ID", "records")
        monkeypatch.setenv("LIMITED_PROFILE_ENCOUNTER_COUNT", "3")

        settings = Settings(_env_file=None)

        assert settings.google_cloud_project == "prod-project"
        assert settings.cloud_health_dataset_id == "clinical"
        assert settings.limited_profile_encounter_count == 3
        assert settings.fhir_store_configured is True

    @pytest.mark.parametrize(
        "field",
        [
            "fhir_request_timeout_seconds",
            "patient_link_ttl_minutes",
            "limited_profile_encounter_count",
            "max_clinical_record_page_size",
        ],
    )
    def test_non_positive_bounds_rejected(self, field):
        with pytest.raises(ValidationError, match=field):
            Settings(_env_file=None, **{field: 0})

    def test_log_format_validated(self):
        assert Settings(_env_file=None, log_format="JSON").log_format == "json"

        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_format="xml")

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
