"""Patient links.

Patient links stand in for durable patient IDs in publicly visible URLs. A
link resolves back to its patient only while it has not expired and has not
been revoked; both conditions are part of the lookup query, so expired and
revoked links are never loaded.

COMPLIANCE NOTE: patient IDs are never logged; only link IDs are.
"""

import secrets
from contextlib import AbstractContextManager
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinical_gateway.config import get_settings
from clinical_gateway.core.exceptions import (
    DataIntegrityError,
    PatientLinkNotFoundError,
    PatientLinkStorageError,
)
from clinical_gateway.models.base import utcnow
from clinical_gateway.models.patient_link import PatientLink
from clinical_gateway.utils.logging import audit_logger, get_logger

logger = get_logger(__name__)

# Bytes of randomness in an opaque ID
OPAQUE_ID_BYTES = 24

SessionFactory = Callable[[], AbstractContextManager[Session]]
Clock = Callable[[], datetime]


class PatientLinkService:
    """Issue and resolve opaque patient links."""

    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        ttl_minutes: Optional[int] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        """Initialize the service.

        Args:
            session_factory: Callable returning a session context manager that
                commits on success, ``database.get_db`` by default
            ttl_minutes: Lifetime of an issued link, from settings by default
            clock: Source of the current time, UTC now by default
        """
        if session_factory is None:
            from clinical_gateway.database import (  # pylint: disable=import-outside-toplevel
                get_db,
            )

            session_factory = get_db
        if ttl_minutes is None:
            ttl_minutes = get_settings().patient_link_ttl_minutes
        if ttl_minutes <= 0:
            raise ValueError(f"ttl_minutes must be greater than zero, got {ttl_minutes}")

        self.session_factory = session_factory
        self.ttl = timedelta(minutes=ttl_minutes)
        self.clock = clock or utcnow

    def _now(self) -> datetime:
        now = self.clock()
        if now.tzinfo is None:
            return now.replace(tzinfo=timezone.utc)
        return now.astimezone(timezone.utc)

    def issue(self, patient_id: str) -> PatientLink:
        """Create and persist a new link for a patient.

        Raises:
            PatientLinkStorageError: the link could not be saved
        """
        if not patient_id:
            raise ValueError("can't create a patient link without a patient ID")

        link = PatientLink(
            patient_id=patient_id,
            opaque_id=secrets.token_urlsafe(OPAQUE_ID_BYTES),
            expires=self._now() + self.ttl,
            deleted=False,
        )
        try:
            with self.session_factory() as session:
                session.add(link)
                session.flush()
        except SQLAlchemyError as e:
            logger.error("patient_link_save_failed", error=str(e))
            raise PatientLinkStorageError(f"unable to save patient link: {e}") from e

        logger.info("patient_link_issued", link_id=link.id, expires=link.expires.isoformat())
        return link

    def resolve(self, opaque_id: str) -> str:
        """Return the patient ID behind an unexpired, unrevoked link.

        Raises:
            PatientLinkNotFoundError: no usable link has this opaque ID
            DataIntegrityError: more than one usable link has this opaque ID
            PatientLinkStorageError: the lookup failed
        """
        statement = (
            select(PatientLink)
            .where(PatientLink.opaque_id == opaque_id)
            .where(PatientLink.expires >= self._now())
            .where(PatientLink.deleted.is_(False))
            .limit(2)
        )
        try:
            with self.session_factory() as session:
                matches = list(session.scalars(statement))
        except SQLAlchemyError as e:
            logger.error("patient_link_lookup_failed", error=str(e))
            raise PatientLinkStorageError(f"unable to look up patient link: {e}") from e

        if not matches:
            raise PatientLinkNotFoundError()
        if len(matches) > 1:
            logger.error("patient_link_not_unique", link_ids=[m.id for m in matches])
            raise DataIntegrityError(
                "expected 1 patient link matching the opaque ID, found several",
                resource_id=matches[0].id,
            )

        link = matches[0]
        audit_logger.log_access("PatientLink", link.id, "resolve")
        return link.patient_id

    def revoke(self, opaque_id: str) -> bool:
        """Mark the links with this opaque ID as deleted.

        Returns:
            True if a link was revoked
        """
        statement = (
            update(PatientLink)
            .where(PatientLink.opaque_id == opaque_id)
            .where(PatientLink.deleted.is_(False))
            .values(deleted=True)
        )
        try:
            with self.session_factory() as session:
                result = session.execute(statement)
        except SQLAlchemyError as e:
            logger.error("patient_link_revoke_failed", error=str(e))
            raise PatientLinkStorageError(f"unable to revoke patient link: {e}") from e

        return bool(result.rowcount)
