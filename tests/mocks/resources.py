"""FHIR R4 resource builders for tests."""

from typing import Any, Dict, List, Optional

PATIENT_REF = "Patient/patient-1"


def encounter(
    encounter_id: str,
    patient_ref: Optional[str] = PATIENT_REF,
    start: str = "2024-01-15T10:00:00+03:00",
) -> Dict[str, Any]:
    """An ambulatory encounter."""
    resource: Dict[str, Any] = {
        "resourceType": "Encounter",
        "id": encounter_id,
        "status": "finished",
        "class": {
            "system": "http://terminology.hl7.org/CodeSystem/v3-ActCode",
            "code": "AMB",
            "display": "ambulatory",
        },
        "period": {"start": start},
    }
    if patient_ref:
        resource["subject"] = {"reference": patient_ref}
    return resource


def condition(
    condition_id: str,
    text: Optional[str] = "Hypertension",
    encounter_id: Optional[str] = None,
    patient_ref: str = PATIENT_REF,
) -> Dict[str, Any]:
    """An active, confirmed condition."""
    resource: Dict[str, Any] = {
        "resourceType": "Condition",
        "id": condition_id,
        "subject": {"reference": patient_ref},
        "clinicalStatus": {
            "coding": [
                {
                    "system": "http://terminology.hl7.org/CodeSystem/condition-clinical",
                    "code": "active",
                }
            ]
        },
        "verificationStatus": {
            "coding": [
                {
                    "system": "http://terminology.hl7.org/CodeSystem/condition-ver-status",
                    "code": "confirmed",
                }
            ]
        },
        "code": {"coding": [{"system": "http://snomed.info/sct", "code": "38341003"}]},
    }
    if text is not None:
        resource["code"]["text"] = text
    if encounter_id:
        resource["encounter"] = {"reference": f"Encounter/{encounter_id}"}
    return resource


def observation(
    observation_id: str, encounter_id: str, patient_ref: str = PATIENT_REF
) -> Dict[str, Any]:
    """A final blood pressure observation."""
    return {
        "resourceType": "Observation",
        "id": observation_id,
        "status": "final",
        "code": {
            "coding": [{"system": "http://loinc.org", "code": "85354-9"}],
            "text": "Blood pressure panel",
        },
        "subject": {"reference": patient_ref},
        "encounter": {"reference": f"Encounter/{encounter_id}"},
        "effectiveDateTime": "2024-01-15T10:30:00+03:00",
    }


def allergy(
    allergy_id: str, text: Optional[str] = "Penicillin", patient_ref: str = PATIENT_REF
) -> Dict[str, Any]:
    """A high criticality allergy."""
    resource: Dict[str, Any] = {
        "resourceType": "AllergyIntolerance",
        "id": allergy_id,
        "patient": {"reference": patient_ref},
        "type": "allergy",
        "criticality": "high",
    }
    if text is not None:
        resource["code"] = {"text": text}
    return resource


def episode_of_care(
    episode_id: str,
    access_levels: Optional[List[str]] = None,
    status: str = "active",
    patient_ref: Optional[str] = PATIENT_REF,
) -> Dict[str, Any]:
    """An episode of care carrying access level markers."""
    resource: Dict[str, Any] = {
        "resourceType": "EpisodeOfCare",
        "id": episode_id,
        "status": status,
    }
    if access_levels is None:
        access_levels = ["FULL_ACCESS"]
    if access_levels:
        resource["type"] = [{"text": level} for level in access_levels]
    if patient_ref:
        resource["patient"] = {"reference": patient_ref}
    return resource


def appointment(identifier_value: str, patient_ref: str = PATIENT_REF) -> Dict[str, Any]:
    """A booked appointment without an ID."""
    return {
        "resourceType": "Appointment",
        "status": "booked",
        "identifier": [
            {"system": "https://healthcloud.co.ke/appointments", "value": identifier_value}
        ],
        "participant": [{"status": "accepted", "actor": {"reference": patient_ref}}],
    }
