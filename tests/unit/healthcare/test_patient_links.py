"""Tests for opaque patient links."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from clinical_gateway.core.exceptions import (
    DataIntegrityError,
    PatientLinkNotFoundError,
    PatientLinkStorageError,
)
from clinical_gateway.healthcare.patient_links import PatientLinkService
from clinical_gateway.models.patient_link import PatientLink

T0 = datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable time source."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(T0)


@pytest.fixture
def links(session_factory, clock):
    return PatientLinkService(session_factory, ttl_minutes=30, clock=clock)


class TestIssueAndResolve:
    def test_resolves_to_patient(self, links):
        link = links.issue("patient1")

        assert links.resolve(link.opaque_id) == "patient1"

    def test_link_fields(self, links):
        link = links.issue("patient1")

        assert link.id
        assert link.deleted is False
        assert link.expires == T0 + timedelta(minutes=30)
        assert link.opaque_id != "patient1"
        assert "patient1" not in repr(link)

    def test_opaque_ids_are_unique(self, links):
        opaque_ids = {links.issue("patient1").opaque_id for _ in range(20)}

        assert len(opaque_ids) == 20

    def test_unknown_id_not_found(self, links):
        links.issue("patient1")

        with pytest.raises(PatientLinkNotFoundError):
            links.resolve("not-a-real-link")

    def test_empty_patient_id_rejected(self, links):
        with pytest.raises(ValueError):
            links.issue("")

    def test_naive_clock_is_treated_as_utc(self, session_factory):
        service = PatientLinkService(
            session_factory, ttl_minutes=30, clock=lambda: T0.replace(tzinfo=None)
        )

        link = service.issue("patient1")

        assert link.expires == T0 + timedelta(minutes=30)
        assert service.resolve(link.opaque_id) == "patient1"

    def test_ttl_must_be_positive(self, session_factory):
        with pytest.raises(ValueError):
            PatientLinkService(session_factory, ttl_minutes=0)


class TestExpiry:
    def test_usable_before_expiry(self, links, clock):
        link = links.issue("patient1")
        clock.advance(minutes=29)

        assert links.resolve(link.opaque_id) == "patient1"

    def test_unusable_after_expiry(self, links, clock):
        link = links.issue("patient1")
        clock.advance(minutes=31)

        with pytest.raises(PatientLinkNotFoundError):
            links.resolve(link.opaque_id)

    def test_ttl_from_settings(self, session_factory, clock, monkeypatch, settings):
        settings.patient_link_ttl_minutes = 5
        monkeypatch.setattr(
            "clinical_gateway.healthcare.patient_links.get_settings", lambda: settings
        )
        service = PatientLinkService(session_factory, clock=clock)

        link = service.issue("patient1")
        clock.advance(minutes=6)

        with pytest.raises(PatientLinkNotFoundError):
            service.resolve(link.opaque_id)


class TestRevoke:
    def test_revoked_link_unusable(self, links):
        link = links.issue("patient1")

        assert links.revoke(link.opaque_id) is True

        with pytest.raises(PatientLinkNotFoundError):
            links.resolve(link.opaque_id)

    def test_revoke_unknown_link(self, links):
        assert links.revoke("not-a-real-link") is False

    def test_revoke_only_touches_one_link(self, links):
        kept = links.issue("patient1")
        revoked = links.issue("patient1")

        links.revoke(revoked.opaque_id)

        assert links.resolve(kept.opaque_id) == "patient1"

    def test_revoked_row_is_kept(self, links, session_factory):
        link = links.issue("patient1")
        links.revoke(link.opaque_id)

        with session_factory() as session:
            stored = session.scalars(
                select(PatientLink).where(PatientLink.id == link.id)
            ).one()

        assert stored.deleted is True


def test_duplicate_usable_links_are_integrity_error(clock):
    """More than one usable link behind one opaque ID is never resolved."""

    class DuplicateRows:
        def scalars(self, statement):
            return iter(
                [
                    PatientLink(id="l1", patient_id="p1", opaque_id="x", expires=T0),
                    PatientLink(id="l2", patient_id="p2", opaque_id="x", expires=T0),
                ]
            )

    class Factory:
        def __enter__(self):
            return DuplicateRows()

        def __exit__(self, *exc_info):
            return False

    service = PatientLinkService(lambda: Factory(), ttl_minutes=30, clock=clock)

    with pytest.raises(DataIntegrityError) as exc_info:
        service.resolve("x")

    assert exc_info.value.resource_id == "l1"


def test_storage_failure_is_wrapped(clock):
    """Database errors surface as storage errors."""
    class Failing:
        def __enter__(self):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        def __exit__(self, *exc_info):
            return False

    service = PatientLinkService(lambda: Failing(), ttl_minutes=30, clock=clock)

    with pytest.raises(PatientLinkStorageError):
        service.resolve("x")
    with pytest.raises(PatientLinkStorageError):
        service.issue("patient1")
