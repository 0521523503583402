"""Base configuration settings."""

from typing import Optional

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    Values are read from the environment (case-insensitive) and from an
    optional ``.env`` file in the working directory.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Clinical Gateway"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    log_format: str = "console"

    # Cloud Healthcare FHIR store
    google_cloud_project: Optional[str] = Field(
        default=None, description="Project that owns the healthcare dataset"
    )
    cloud_health_location: str = "europe-west4"
    cloud_health_dataset_id: Optional[str] = None
    cloud_health_fhirstore_id: Optional[str] = None
    fhir_base_url: str = "https://healthcare.googleapis.com/v1"
    fhir_request_timeout_seconds: float = 10.0
    fhir_auth_scopes: list[str] = ["https://www.googleapis.com/auth/cloud-platform"]

    # Patient links
    database_url: str = "sqlite:///./clinical_gateway.db"
    patient_link_ttl_minutes: int = 30

    # Timeline access policy
    limited_profile_encounter_count: int = Field(
        default=5,
        description="Encounters shown when a patient approved limited access",
    )
    max_clinical_record_page_size: int = Field(
        default=50, description="Upper bound of encounters on a timeline"
    )

    @field_validator(
        "fhir_request_timeout_seconds",
        "patient_link_ttl_minutes",
        "limited_profile_encounter_count",
        "max_clinical_record_page_size",
    )
    @classmethod
    def validate_positive(cls, v: float, info: ValidationInfo) -> float:
        """Reject zero and negative bounds."""
        if v <= 0:
            raise ValueError(f"{info.field_name} must be greater than zero, got {v}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Only console and json renderers are supported."""
        v = v.lower()
        if v not in ("console", "json"):
            raise ValueError(f"log_format must be 'console' or 'json', got {v!r}")
        return v

    @property
    def fhir_store_configured(self) -> bool:
        """Whether every identifier of the FHIR store path is set."""
        return all(
            (
                self.google_cloud_project,
                self.cloud_health_location,
                self.cloud_health_dataset_id,
                self.cloud_health_fhirstore_id,
            )
        )
