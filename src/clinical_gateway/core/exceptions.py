"""Core Exceptions Module.

This module defines the exceptions raised by the clinical gateway. Every
component raises one of these instead of returning a sentinel; callers at the
API boundary translate them into user-facing messages.
"""

from typing import Optional


class ClinicalGatewayError(Exception):
    """Base exception for all clinical gateway errors."""

    def __init__(self, message: str, code: Optional[str] = None):
        """Initialize exception.

        Args:
            message: Error message
            code: Optional error code
        """
        super().__init__(message)
        self.code = code


class ConfigurationError(ClinicalGatewayError):
    """Raised when configuration is invalid or missing."""


# Transport


class FHIRStoreError(ClinicalGatewayError):
    """Raised when a call to the FHIR store fails."""


class FHIRStoreHTTPError(FHIRStoreError):
    """Raised when the FHIR store answers with a status code of 300 or above."""

    def __init__(self, method: str, url: str, status_code: int, body: str):
        """Initialize FHIRStoreHTTPError."""
        super().__init__(
            f"{method} {url}: status {status_code}: {body}", "FHIR_STORE_HTTP_ERROR"
        )
        self.method = method
        self.url = url
        self.status_code = status_code
        self.body = body


class FHIRStoreTimeoutError(FHIRStoreError):
    """Raised when a FHIR store call exceeds its timeout."""


class FHIRStoreConnectionError(FHIRStoreError):
    """Raised when the FHIR store cannot be reached."""


class FHIRStoreSetupError(FHIRStoreError):
    """Raised when the dataset or FHIR store cannot be fetched or created."""


class CredentialsError(ClinicalGatewayError):
    """Raised when a bearer token cannot be obtained."""


# Contract violations


class SearchParameterError(ClinicalGatewayError):
    """Raised when search parameters are missing or not plain strings."""


class MalformedSearchResultError(ClinicalGatewayError):
    """Raised when a search response is not a well formed searchset Bundle."""


class ResourceParseError(ClinicalGatewayError):
    """Raised when a resource map cannot be read into its FHIR model."""


class VisitSummaryConfigurationError(ClinicalGatewayError):
    """Raised when the visit summary dispatch table is incomplete."""


# Data integrity


class DataIntegrityError(ClinicalGatewayError):
    """Raised when a stored record breaks an invariant the gateway relies on."""

    def __init__(self, message: str, resource_id: Optional[str] = None):
        """Initialize DataIntegrityError."""
        super().__init__(message, "DATA_INTEGRITY_ERROR")
        self.resource_id = resource_id


class EpisodeAccessError(DataIntegrityError):
    """Raised when an episode of care cannot grant timeline access."""


# Not found


class ResourceNotFoundError(ClinicalGatewayError):
    """Raised when a resource fetched by ID does not exist."""

    def __init__(self, resource_type: str, resource_id: str):
        """Initialize ResourceNotFoundError."""
        super().__init__(
            f"{resource_type} with ID {resource_id} not found", "NOT_FOUND"
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class PatientLinkNotFoundError(ClinicalGatewayError):
    """Raised when an opaque ID does not resolve to a usable patient link."""

    def __init__(self, message: str = "patient link not found or expired"):
        """Initialize PatientLinkNotFoundError."""
        super().__init__(message, "NOT_FOUND")


# Storage


class PatientLinkStorageError(ClinicalGatewayError):
    """Raised when a patient link cannot be persisted or queried."""
