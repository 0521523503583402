"""FHIR resource search facade.

One search operation per supported resource type. Every operation shares the
same pipeline: the parameters are checked to be plain strings, the search is
sent through the gateway, the response is validated as a searchset Bundle and
each embedded resource is read into its ``fhirclient`` R4 model. A resource
that cannot be read aborts the whole search.

# FHIR Compliance: Condition, AllergyIntolerance, Observation, Composition,
# MedicationRequest, ServiceRequest, Encounter, Appointment, Organization,
# EpisodeOfCare and Patient resources are read as FHIR R4 DomainResources
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import (
    Any,
    Callable,
    Dict,
    Generic,
    List,
    Mapping,
    Optional,
    Type,
    TypeVar,
)

from fhirclient.models.allergyintolerance import AllergyIntolerance
from fhirclient.models.appointment import Appointment
from fhirclient.models.composition import Composition
from fhirclient.models.condition import Condition
from fhirclient.models.encounter import Encounter
from fhirclient.models.episodeofcare import EpisodeOfCare
from fhirclient.models.fhirabstractbase import FHIRValidationError
from fhirclient.models.fhirabstractresource import FHIRAbstractResource
from fhirclient.models.medicationrequest import MedicationRequest
from fhirclient.models.observation import Observation
from fhirclient.models.organization import Organization
from fhirclient.models.patient import Patient
from fhirclient.models.servicerequest import ServiceRequest

from clinical_gateway.core.exceptions import (
    ClinicalGatewayError,
    DataIntegrityError,
    EpisodeAccessError,
    ResourceNotFoundError,
    ResourceParseError,
    SearchParameterError,
)
from clinical_gateway.healthcare.bundle_validator import validate_search_bundle
from clinical_gateway.healthcare.fhir_gateway import FHIRStoreGateway
from clinical_gateway.models.base import utcnow
from clinical_gateway.utils.logging import get_logger

logger = get_logger(__name__)

ENCOUNTER_CLASS_AMBULATORY = {
    "system": "http://terminology.hl7.org/CodeSystem/v3-ActCode",
    "version": "2018-08-12",
    "code": "AMB",
    "display": "ambulatory",
    "userSelected": False,
}

# The Cloud Healthcare API rejects period ends less than a day after the start
PERIOD_END_OFFSET = timedelta(hours=24)

R = TypeVar("R", bound=FHIRAbstractResource)

RESOURCE_MODELS: Dict[str, Type[FHIRAbstractResource]] = {
    model.resource_type: model
    for model in (
        AllergyIntolerance,
        Appointment,
        Composition,
        Condition,
        Encounter,
        EpisodeOfCare,
        MedicationRequest,
        Observation,
        Organization,
        Patient,
        ServiceRequest,
    )
}


@dataclass
class Edge(Generic[R]):
    """One search hit."""

    node: Optional[R]


@dataclass
class Connection(Generic[R]):
    """Ordered search hits, as returned by the store."""

    edges: List[Edge[R]] = field(default_factory=list)

    def nodes(self) -> List[R]:
        """Non-empty nodes, in order."""
        return [edge.node for edge in self.edges if edge.node is not None]

    def __len__(self) -> int:
        """Return the number of edges."""
        return len(self.edges)


def validate_search_params(params: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """Check that search parameters exist and are all plain strings.

    Callers stringify values (counts, dates) before searching.
    """
    if params is None:
        raise SearchParameterError("can't search with nil params")
    output: Dict[str, str] = {}
    for key, value in params.items():
        if not isinstance(value, str):
            raise SearchParameterError(
                f"the search/filter params should all be sent as strings, "
                f"{key} is a {type(value).__name__}"
            )
        output[key] = value
    return output


def model_for(resource_type: str) -> Type[FHIRAbstractResource]:
    """Model class of a supported resource type."""
    try:
        return RESOURCE_MODELS[resource_type]
    except KeyError:
        raise ResourceParseError(
            f"unsupported resource type {resource_type}", "UNSUPPORTED_RESOURCE"
        ) from None


def parse_resource(model: Type[R], data: Mapping[str, Any]) -> R:
    """Read a resource map into its model.

    Raises:
        ResourceParseError: the map declares another resource type or does
            not fit the model
    """
    declared = data.get("resourceType")
    if declared is not None and declared != model.resource_type:
        raise ResourceParseError(
            f"server error: expected a {model.resource_type}, got a {declared}",
            "RESOURCE_PARSE_ERROR",
        )
    try:
        return model(dict(data), strict=True)
    except FHIRValidationError as e:
        logger.error(
            "resource_parse_failed",
            resource_type=model.resource_type,
            resource_id=data.get("id"),
            error=str(e),
        )
        raise ResourceParseError(
            f"server error: unable to read {model.resource_type} "
            f"{data.get('id')}: {e}",
            "RESOURCE_PARSE_ERROR",
        ) from e


def _decode(model: Type[R], raw: bytes) -> R:
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise ResourceParseError(
            f"server error: {model.resource_type} response is not valid JSON: {e}",
            "RESOURCE_PARSE_ERROR",
        ) from e
    if not isinstance(data, dict):
        raise ResourceParseError(
            f"server error: {model.resource_type} response is not an object",
            "RESOURCE_PARSE_ERROR",
        )
    return parse_resource(model, data)


class FHIRResourceSearch:
    """Typed search, read and write operations on the FHIR store."""

    def __init__(
        self,
        gateway: FHIRStoreGateway,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize the facade.

        Args:
            gateway: Gateway used for every call
            clock: Source of encounter and episode timestamps, UTC now by default
        """
        self.gateway = gateway
        self.clock = clock or utcnow

    async def search(
        self, model: Type[R], params: Optional[Mapping[str, Any]]
    ) -> Connection[R]:
        """Search one resource type and read every hit into ``model``."""
        query = validate_search_params(params)
        raw = await self.gateway.search(model.resource_type, query)
        resources = validate_search_bundle(raw)

        connection: Connection[R] = Connection()
        for resource in resources:
            connection.edges.append(Edge(node=parse_resource(model, resource)))

        logger.debug(
            "fhir_search_completed",
            resource_type=model.resource_type,
            matches=len(connection.edges),
        )
        return connection

    async def search_condition(
        self, params: Optional[Mapping[str, Any]]
    ) -> Connection[Condition]:
        """Search Condition resources."""
        return await self.search(Condition, params)

    async def search_allergy_intolerance(
        self, params: Optional[Mapping[str, Any]]
    ) -> Connection[AllergyIntolerance]:
        """Search AllergyIntolerance resources."""
        return await self.search(AllergyIntolerance, params)

    async def search_observation(
        self, params: Optional[Mapping[str, Any]]
    ) -> Connection[Observation]:
        """Search Observation resources."""
        return await self.search(Observation, params)

    async def search_composition(
        self, params: Optional[Mapping[str, Any]]
    ) -> Connection[Composition]:
        """Search Composition resources."""
        return await self.search(Composition, params)

    async def search_medication_request(
        self, params: Optional[Mapping[str, Any]]
    ) -> Connection[MedicationRequest]:
        """Search MedicationRequest resources."""
        return await self.search(MedicationRequest, params)

    async def search_service_request(
        self, params: Optional[Mapping[str, Any]]
    ) -> Connection[ServiceRequest]:
        """Search ServiceRequest resources."""
        return await self.search(ServiceRequest, params)

    async def search_encounter(
        self, params: Optional[Mapping[str, Any]]
    ) -> Connection[Encounter]:
        """Search Encounter resources."""
        return await self.search(Encounter, params)

    async def search_appointment(
        self, params: Optional[Mapping[str, Any]]
    ) -> Connection[Appointment]:
        """Search Appointment resources."""
        return await self.search(Appointment, params)

    async def search_organization(
        self, params: Optional[Mapping[str, Any]]
    ) -> Connection[Organization]:
        """Search Organization resources."""
        return await self.search(Organization, params)

    async def search_episode_of_care(
        self, params: Optional[Mapping[str, Any]]
    ) -> Connection[EpisodeOfCare]:
        """Search EpisodeOfCare resources."""
        return await self.search(EpisodeOfCare, params)

    async def search_patient(
        self, params: Optional[Mapping[str, Any]]
    ) -> Connection[Patient]:
        """Search Patient resources."""
        return await self.search(Patient, params)

    # Reads

    async def get(self, model: Type[R], resource_id: str) -> R:
        """Read one resource by ID.

        Raises:
            ResourceNotFoundError: no resource with that ID exists
        """
        raw = await self.gateway.get_resource(model.resource_type, resource_id)
        return _decode(model, raw)

    async def get_encounter(self, encounter_id: str) -> Encounter:
        """Read an Encounter by ID."""
        return await self.get(Encounter, encounter_id)

    async def get_episode_of_care(self, episode_id: str) -> EpisodeOfCare:
        """Read an EpisodeOfCare by ID."""
        return await self.get(EpisodeOfCare, episode_id)

    async def get_patient(self, patient_id: str) -> Patient:
        """Read a Patient by ID."""
        return await self.get(Patient, patient_id)

    async def get_appointment(self, appointment_id: str) -> Appointment:
        """Read an Appointment by ID."""
        return await self.get(Appointment, appointment_id)

    async def get_organization(self, organization_id: str) -> Organization:
        """Read an Organization by ID."""
        return await self.get(Organization, organization_id)

    # Writes

    async def create(
        self, resource_type: str, payload: Dict[str, Any]
    ) -> FHIRAbstractResource:
        """Create a resource and return it as stored, with its new ID."""
        model = model_for(resource_type)
        raw = await self.gateway.create_resource(resource_type, payload)
        return _decode(model, raw)

    async def update(
        self, resource_type: str, resource_id: Optional[str], payload: Dict[str, Any]
    ) -> FHIRAbstractResource:
        """Replace a resource. The resource must have its ID set."""
        if not resource_id:
            raise SearchParameterError(f"can't update a {resource_type} with a nil ID")
        model = model_for(resource_type)
        raw = await self.gateway.update_resource(resource_type, resource_id, payload)
        return _decode(model, raw)

    async def delete(self, resource_type: str, resource_id: str) -> bool:
        """Delete a resource."""
        await self.gateway.delete_resource(resource_type, resource_id)
        logger.info(
            "fhir_resource_deleted", resource_type=resource_type, resource_id=resource_id
        )
        return True

    # Summaries

    async def problem_summary(self, patient_id: str) -> List[str]:
        """Names of the patient's active and confirmed problems.

        Raises:
            DataIntegrityError: a matching Condition has no coded text
        """
        params = {
            "clinical-status": "active",
            "verification-status": "confirmed",
            "category": "problem-list-item",
            "subject": f"Patient/{patient_id}",
        }
        conditions = await self.search_condition(params)

        output = []
        for condition in conditions.nodes():
            if condition.code is None:
                raise DataIntegrityError(
                    f"server error: every condition must have a code, "
                    f"Condition/{condition.id} has none",
                    resource_id=condition.id,
                )
            if not condition.code.text:
                raise DataIntegrityError(
                    f"server error: every condition code must have its text set, "
                    f"Condition/{condition.id} does not",
                    resource_id=condition.id,
                )
            output.append(condition.code.text)
        return output

    async def allergy_summary(self, patient_id: str) -> List[str]:
        """Names of the patient's active, confirmed, high criticality allergies.

        Raises:
            DataIntegrityError: a matching AllergyIntolerance has no coded text
        """
        params = {
            "clinical-status": "active",
            "verification-status": "confirmed",
            "type": "allergy",
            "criticality": "high",
            "patient": f"Patient/{patient_id}",
        }
        allergies = await self.search_allergy_intolerance(params)

        output = []
        for allergy in allergies.nodes():
            if allergy.code is None:
                raise DataIntegrityError(
                    f"server error: every allergy must have a code, "
                    f"AllergyIntolerance/{allergy.id} has none",
                    resource_id=allergy.id,
                )
            if not allergy.code.text:
                raise DataIntegrityError(
                    f"server error: every allergy code must have its text set, "
                    f"AllergyIntolerance/{allergy.id} does not",
                    resource_id=allergy.id,
                )
            output.append(allergy.code.text)
        return output

    # Encounters and episodes

    async def patient_encounters(
        self, patient_reference: str, status: Optional[str] = None
    ) -> List[Encounter]:
        """Encounters of a patient, optionally restricted to one status."""
        params = {"patient": patient_reference}
        if status:
            params["status"] = status
        encounters = await self.search_encounter(params)
        return encounters.nodes()

    async def open_episodes(self, patient_reference: str) -> List[EpisodeOfCare]:
        """Active episodes of care of a patient."""
        episodes = await self.search_episode_of_care(
            {"patient": patient_reference, "status": "active"}
        )
        return episodes.nodes()

    async def has_open_episode(self, patient_reference: str) -> bool:
        """Whether the patient has at least one active episode of care."""
        return len(await self.open_episodes(patient_reference)) > 0

    async def get_active_episode(self, episode_id: str) -> EpisodeOfCare:
        """Fetch an episode of care only if it is active.

        Raises:
            ResourceNotFoundError: no active episode has this ID
            DataIntegrityError: more than one active episode has this ID
        """
        episodes = await self.search_episode_of_care(
            {"status:exact": "active", "_id": episode_id}
        )
        nodes = episodes.nodes()
        if not nodes:
            raise ResourceNotFoundError("EpisodeOfCare", episode_id)
        if len(nodes) > 1:
            raise DataIntegrityError(
                f"expected one active episode with ID {episode_id}, found {len(nodes)}",
                resource_id=episode_id,
            )
        return nodes[0]

    async def search_episode_encounters(self, episode_id: str) -> List[Encounter]:
        """In-progress encounters of an episode of care."""
        encounters = await self.search_encounter(
            {
                "episode-of-care": f"EpisodeOfCare/{episode_id}",
                "status": "in-progress",
            }
        )
        return encounters.nodes()

    async def start_encounter(self, episode_id: str) -> str:
        """Start an ambulatory encounter within an active episode.

        Returns:
            ID of the new encounter

        Raises:
            EpisodeAccessError: the episode is not active or has no patient
        """
        episode = await self.get_episode_of_care(episode_id)
        if episode.status != "active":
            raise EpisodeAccessError(
                "an encounter can only be started for an active episode",
                resource_id=episode_id,
            )
        if episode.patient is None or not episode.patient.reference:
            raise EpisodeAccessError(
                f"the episode with ID {episode_id} has no patient reference",
                resource_id=episode_id,
            )

        payload: Dict[str, Any] = {
            "status": "in-progress",
            "class": dict(ENCOUNTER_CLASS_AMBULATORY),
            "subject": episode.patient.as_json(),
            "episodeOfCare": [{"reference": f"EpisodeOfCare/{episode.id}"}],
            "period": {"start": self.clock().isoformat(timespec="seconds")},
        }
        if episode.managingOrganization is not None:
            payload["serviceProvider"] = episode.managingOrganization.as_json()

        encounter = await self.create("Encounter", payload)
        logger.info("encounter_started", episode_id=episode_id, encounter_id=encounter.id)
        return str(encounter.id)

    async def end_encounter(self, encounter_id: str) -> bool:
        """Mark an encounter finished."""
        encounter = await self.get_encounter(encounter_id)
        payload = encounter.as_json()
        payload["status"] = "finished"
        period = payload.setdefault("period", {})
        period["end"] = (self.clock() + PERIOD_END_OFFSET).isoformat(timespec="seconds")

        await self.update("Encounter", encounter_id, payload)
        logger.info("encounter_ended", encounter_id=encounter_id)
        return True

    async def end_episode(self, episode_id: str) -> bool:
        """Finish an episode of care and every encounter still open in it.

        An encounter that cannot be closed is logged and skipped; the episode
        is finished regardless.
        """
        episode = await self.get_episode_of_care(episode_id)
        now = self.clock()

        for encounter in await self.search_episode_encounters(episode_id):
            if not encounter.id:
                continue
            try:
                await self.end_encounter(encounter.id)
            except ClinicalGatewayError as e:
                logger.warning(
                    "episode_encounter_not_ended",
                    episode_id=episode_id,
                    encounter_id=encounter.id,
                    error=str(e),
                )

        payload = episode.as_json()
        payload["status"] = "finished"
        period = payload.setdefault("period", {})
        period.setdefault("start", now.isoformat(timespec="seconds"))
        period["end"] = (now + PERIOD_END_OFFSET).isoformat(timespec="seconds")

        await self.update("EpisodeOfCare", episode_id, payload)
        logger.info("episode_ended", episode_id=episode_id)
        return True

    # Organizations

    async def get_or_create_organization(self, provider_code: str) -> str:
        """ID of the organization identified by a provider code.

        The organization is created when no match exists.
        """
        organizations = await self.search_organization({"identifier": provider_code})
        for organization in organizations.nodes():
            if organization.id:
                return organization.id

        created = await self.create(
            "Organization",
            {
                "identifier": [{"use": "official", "value": provider_code}],
                "name": provider_code,
            },
        )
        logger.info("organization_created", organization_id=created.id)
        return str(created.id)
