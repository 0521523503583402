"""Database models."""

from clinical_gateway.models.base import Base
from clinical_gateway.models.patient_link import PatientLink

__all__ = ["Base", "PatientLink"]
