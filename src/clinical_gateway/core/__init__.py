"""Core Module.

This module provides the exception hierarchy shared by the gateway.
"""

from .exceptions import (
    ClinicalGatewayError,
    ConfigurationError,
    CredentialsError,
    DataIntegrityError,
    EpisodeAccessError,
    FHIRStoreConnectionError,
    FHIRStoreError,
    FHIRStoreHTTPError,
    FHIRStoreSetupError,
    FHIRStoreTimeoutError,
    MalformedSearchResultError,
    PatientLinkNotFoundError,
    PatientLinkStorageError,
    ResourceNotFoundError,
    ResourceParseError,
    SearchParameterError,
    VisitSummaryConfigurationError,
)

__all__ = [
    "ClinicalGatewayError",
    "ConfigurationError",
    "CredentialsError",
    "DataIntegrityError",
    "EpisodeAccessError",
    "FHIRStoreConnectionError",
    "FHIRStoreError",
    "FHIRStoreHTTPError",
    "FHIRStoreSetupError",
    "FHIRStoreTimeoutError",
    "MalformedSearchResultError",
    "PatientLinkNotFoundError",
    "PatientLinkStorageError",
    "ResourceNotFoundError",
    "ResourceParseError",
    "SearchParameterError",
    "VisitSummaryConfigurationError",
]
