"""Patient link model.

A patient link maps a short lived opaque ID, safe to put in a public URL, to
the durable patient ID it stands for.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from clinical_gateway.models.base import Base, TimestampMixin


class PatientLink(Base, TimestampMixin):
    """Opaque, expiring reference to a patient."""

    __tablename__ = "patient_links"
    __table_args__ = (Index("ix_patient_links_opaque_id_expires", "opaque_id", "expires"),)

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    patient_id: Mapped[str] = mapped_column(String(255), nullable=False)
    opaque_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    expires: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        """Return string representation without the patient ID."""
        return f"<PatientLink(id={self.id}, expires={self.expires.isoformat()})>"
