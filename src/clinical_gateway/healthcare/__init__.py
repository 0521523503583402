"""FHIR store access, aggregation and access policy."""

from clinical_gateway.healthcare.bundle_validator import validate_search_bundle
from clinical_gateway.healthcare.fhir_gateway import FHIRStoreGateway
from clinical_gateway.healthcare.fhir_search import (
    Connection,
    Edge,
    FHIRResourceSearch,
    validate_search_params,
)
from clinical_gateway.healthcare.patient_links import PatientLinkService
from clinical_gateway.healthcare.timeline import AccessLevel, PatientTimeline
from clinical_gateway.healthcare.visit_summary import (
    VisitResource,
    VisitSummaryAggregator,
)

__all__ = [
    "AccessLevel",
    "Connection",
    "Edge",
    "FHIRResourceSearch",
    "FHIRStoreGateway",
    "PatientLinkService",
    "PatientTimeline",
    "VisitResource",
    "VisitSummaryAggregator",
    "validate_search_bundle",
    "validate_search_params",
]
