"""Patient timelines.

A timeline is the list of visit summaries of a patient, most recent encounter
first. How far back it reaches is decided by the access level recorded on the
patient's episode of care: a patient who approved limited access only exposes
their last few visits.
"""

from enum import Enum
from typing import Dict, List, Optional, Tuple

from fhirclient.models.episodeofcare import EpisodeOfCare

from clinical_gateway.config import Settings, get_settings
from clinical_gateway.core.exceptions import EpisodeAccessError, SearchParameterError
from clinical_gateway.healthcare.fhir_search import FHIRResourceSearch
from clinical_gateway.healthcare.visit_summary import (
    VisitSummary,
    VisitSummaryAggregator,
)
from clinical_gateway.utils.logging import audit_logger, get_logger

logger = get_logger(__name__)

ACTIVE_EPISODE_STATUS = "active"


class AccessLevel(Enum):
    """Access levels a patient can grant on an episode of care."""

    FULL_ACCESS = "FULL_ACCESS"
    PROFILE_AND_RECENT_VISITS_ACCESS = "PROFILE_AND_RECENT_VISITS_ACCESS"


class PatientTimeline:
    """Access-gated, reverse chronological visit summaries."""

    def __init__(
        self,
        search: FHIRResourceSearch,
        aggregator: Optional[VisitSummaryAggregator] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        """Initialize the timeline.

        Args:
            search: Search facade
            aggregator: Visit summary aggregator, built on ``search`` by default
            settings: Source of the encounter count ceilings
        """
        settings = settings or get_settings()
        self.search = search
        self.aggregator = aggregator or VisitSummaryAggregator(search)
        self.encounter_ceilings: Dict[AccessLevel, int] = {
            AccessLevel.FULL_ACCESS: settings.max_clinical_record_page_size,
            AccessLevel.PROFILE_AND_RECENT_VISITS_ACCESS: (
                settings.limited_profile_encounter_count
            ),
        }

    async def _active_episode(self, episode_id: str) -> EpisodeOfCare:
        episode = await self.search.get_episode_of_care(episode_id)
        if episode.patient is None or not episode.patient.reference:
            raise EpisodeAccessError(
                f"the episode with ID {episode_id} has no patient reference",
                resource_id=episode_id,
            )
        if episode.status != ACTIVE_EPISODE_STATUS:
            raise EpisodeAccessError(
                f"the episode with ID {episode_id} is not active",
                resource_id=episode_id,
            )
        return episode

    async def timeline_episode(
        self, episode_id: str
    ) -> Tuple[EpisodeOfCare, AccessLevel]:
        """Fetch an episode and the access level it grants.

        Raises:
            ResourceNotFoundError: the episode does not exist
            EpisodeAccessError: the episode is inactive, has no patient, or
                does not carry exactly one recognized access level
        """
        episode = await self._active_episode(episode_id)
        if not episode.type:
            raise EpisodeAccessError(
                f"the episode with ID {episode_id} has no access level type",
                resource_id=episode_id,
            )
        if len(episode.type) != 1:
            raise EpisodeAccessError(
                f"expected the type of episode {episode_id} to have just one "
                f"entry, it has {len(episode.type)}",
                resource_id=episode_id,
            )
        marker = episode.type[0].text
        try:
            access_level = AccessLevel(marker)
        except ValueError:
            raise EpisodeAccessError(
                f"unknown episode access level: {marker}", resource_id=episode_id
            ) from None
        return episode, access_level

    async def patient_timeline(self, episode_id: str) -> List[VisitSummary]:
        """Timeline bounded by the access level of the episode."""
        episode, access_level = await self.timeline_episode(episode_id)
        count = self.encounter_ceilings[access_level]
        logger.info(
            "patient_timeline_requested",
            episode_id=episode_id,
            access_level=access_level.value,
            count=count,
        )
        return await self._visit_summaries(episode, count)

    async def patient_timeline_with_count(
        self, episode_id: str, count: int
    ) -> List[VisitSummary]:
        """Timeline with a caller supplied encounter count.

        For internal callers that already know the count is appropriate. The
        access level is not consulted, the episode must still be active.
        """
        if count <= 0:
            raise SearchParameterError(f"count must be greater than zero, got {count}")
        episode = await self._active_episode(episode_id)
        return await self._visit_summaries(episode, count)

    async def _visit_summaries(
        self, episode: EpisodeOfCare, count: int
    ) -> List[VisitSummary]:
        patient_reference = episode.patient.reference
        encounters = await self.search.search_encounter(
            {
                "patient": patient_reference,
                "sort": "-date",
                "_count": str(count),
            }
        )
        audit_logger.log_access("EpisodeOfCare", str(episode.id), "timeline")

        summaries: List[VisitSummary] = []
        for encounter in encounters.nodes()[:count]:
            if not encounter.id:
                continue
            summaries.append(await self.aggregator.visit_summary(encounter.id, count))
        return summaries
