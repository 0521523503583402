"""Clinical service.

Wires the FHIR store gateway, search facade, visit summaries and timelines
together. ``initialize`` provisions the FHIR store and is called once by the
hosting process; constructing the service has no remote side effects.
"""

from typing import List, Optional

from clinical_gateway.config import Settings, get_settings
from clinical_gateway.healthcare.fhir_credentials import BearerTokenProvider
from clinical_gateway.healthcare.fhir_gateway import FHIRStoreGateway
from clinical_gateway.healthcare.fhir_search import FHIRResourceSearch
from clinical_gateway.healthcare.fhir_store_setup import ensure_fhir_store
from clinical_gateway.healthcare.timeline import PatientTimeline
from clinical_gateway.healthcare.visit_summary import (
    VisitSummary,
    VisitSummaryAggregator,
)
from clinical_gateway.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


class ClinicalService:
    """Entry point for summaries and timelines."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        gateway: Optional[FHIRStoreGateway] = None,
        credentials: Optional[BearerTokenProvider] = None,
    ) -> None:
        """Initialize the service from settings."""
        self.settings = settings or get_settings()
        self.gateway = gateway or FHIRStoreGateway(self.settings, credentials)
        self.search = FHIRResourceSearch(self.gateway)
        self.visits = VisitSummaryAggregator(self.search)
        self.timeline = PatientTimeline(self.search, self.visits, self.settings)

    async def initialize(self) -> None:
        """Configure logging and make sure the dataset and FHIR store exist."""
        setup_logging(self.settings)
        created = await ensure_fhir_store(self.gateway)
        logger.info(
            "clinical_service_initialized",
            fhir_store_id=self.gateway.fhir_store_id,
            fhir_store_created=created,
        )

    async def problem_summary(self, patient_id: str) -> List[str]:
        """Active, confirmed problems of a patient."""
        return await self.search.problem_summary(patient_id)

    async def allergy_summary(self, patient_id: str) -> List[str]:
        """Active, confirmed, high criticality allergies of a patient."""
        return await self.search.allergy_summary(patient_id)

    async def visit_summary(self, encounter_id: str, count: int) -> VisitSummary:
        """Records of one encounter keyed by resource type."""
        return await self.visits.visit_summary(encounter_id, count)

    async def patient_timeline(self, episode_id: str) -> List[VisitSummary]:
        """Visit summaries bounded by the episode's access level."""
        return await self.timeline.patient_timeline(episode_id)

    async def patient_timeline_with_count(
        self, episode_id: str, count: int
    ) -> List[VisitSummary]:
        """Visit summaries bounded by a caller supplied count."""
        return await self.timeline.patient_timeline_with_count(episode_id, count)
