"""Visit summaries.

A visit summary gathers every clinically relevant record of one encounter.
Resource types that reference the encounter are searched by encounter; the
ones without an encounter reference are searched by the encounter's patient.
The set of resource types is closed: the dispatch table below is checked for
completeness when the module is imported.
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Tuple

from clinical_gateway.core.exceptions import (
    DataIntegrityError,
    VisitSummaryConfigurationError,
)
from clinical_gateway.healthcare.fhir_search import Connection, FHIRResourceSearch
from clinical_gateway.utils.logging import get_logger

logger = get_logger(__name__)

VisitSummary = Dict[str, List[Dict[str, Any]]]


class VisitResource(Enum):
    """Resource types that make up a visit summary."""

    CONDITION = "Condition"
    ALLERGY_INTOLERANCE = "AllergyIntolerance"
    OBSERVATION = "Observation"
    COMPOSITION = "Composition"
    MEDICATION_REQUEST = "MedicationRequest"
    SERVICE_REQUEST = "ServiceRequest"
    ENCOUNTER = "Encounter"


class FilterScope(Enum):
    """Which filter a resource type is searched with."""

    ENCOUNTER = "encounter"  # encounter=Encounter/{id}
    PATIENT = "patient"  # patient={subject reference}
    SELF = "self"  # _id={encounter id}


SearchOperation = Callable[[FHIRResourceSearch, Mapping[str, str]], Awaitable[Connection]]

VISIT_SEARCHES: Dict[VisitResource, Tuple[SearchOperation, FilterScope]] = {
    VisitResource.CONDITION: (
        FHIRResourceSearch.search_condition,
        FilterScope.ENCOUNTER,
    ),
    VisitResource.ALLERGY_INTOLERANCE: (
        FHIRResourceSearch.search_allergy_intolerance,
        FilterScope.PATIENT,
    ),
    VisitResource.OBSERVATION: (
        FHIRResourceSearch.search_observation,
        FilterScope.ENCOUNTER,
    ),
    VisitResource.COMPOSITION: (
        FHIRResourceSearch.search_composition,
        FilterScope.ENCOUNTER,
    ),
    VisitResource.MEDICATION_REQUEST: (
        FHIRResourceSearch.search_medication_request,
        FilterScope.ENCOUNTER,
    ),
    VisitResource.SERVICE_REQUEST: (
        FHIRResourceSearch.search_service_request,
        FilterScope.ENCOUNTER,
    ),
    VisitResource.ENCOUNTER: (
        FHIRResourceSearch.search_encounter,
        FilterScope.SELF,
    ),
}


def check_visit_searches() -> None:
    """Fail loudly if a visit resource has no search operation."""
    missing = [r.value for r in VisitResource if r not in VISIT_SEARCHES]
    if missing:
        raise VisitSummaryConfigurationError(
            f"server error: no search operation for visit resources {missing}",
            "VISIT_SUMMARY_CONFIGURATION",
        )


check_visit_searches()


class VisitSummaryAggregator:
    """Assemble visit summaries from the FHIR store."""

    def __init__(self, search: FHIRResourceSearch) -> None:
        """Initialize with the search facade."""
        self.search = search

    async def _collect(
        self, resource: VisitResource, filters: Mapping[FilterScope, Mapping[str, str]]
    ) -> List[Dict[str, Any]]:
        operation, scope = VISIT_SEARCHES[resource]
        try:
            connection = await operation(self.search, filters[scope])
        except Exception:
            logger.error("visit_summary_search_failed", resource_type=resource.value)
            raise

        records = []
        for node in connection.nodes():
            projection = node.as_json()
            if projection:
                records.append(projection)
        return records

    async def visit_summary(self, encounter_id: str, count: int) -> VisitSummary:
        """Records associated with one encounter, keyed by resource type.

        Resource types without matches are left out of the result. The
        searches run concurrently; the first failure cancels the others and
        is raised.

        Args:
            encounter_id: ID of the Encounter
            count: Page size of every search

        Raises:
            ResourceNotFoundError: the encounter does not exist
            DataIntegrityError: the encounter has no patient reference
        """
        encounter = await self.search.get_encounter(encounter_id)
        if encounter.subject is None or not encounter.subject.reference:
            raise DataIntegrityError(
                f"invalid: Encounter/{encounter.id} has no patient reference",
                resource_id=encounter.id,
            )

        filters: Dict[FilterScope, Mapping[str, str]] = {
            FilterScope.ENCOUNTER: {
                "encounter": f"Encounter/{encounter.id or encounter_id}",
                "_count": str(count),
            },
            FilterScope.PATIENT: {
                "patient": encounter.subject.reference,
                "_count": str(count),
            },
            FilterScope.SELF: {"_id": encounter_id},
        }

        resources = list(VisitResource)
        tasks = [
            asyncio.ensure_future(self._collect(resource, filters))
            for resource in resources
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        summary: VisitSummary = {}
        for resource, records in zip(resources, results):
            if records:
                summary[resource.value] = records
        return summary
