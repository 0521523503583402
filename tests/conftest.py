"""Test configuration for the clinical gateway."""

from contextlib import contextmanager

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from clinical_gateway.config import Settings
from clinical_gateway.healthcare.fhir_credentials import StaticBearerTokenProvider
from clinical_gateway.healthcare.fhir_gateway import FHIRStoreGateway
from clinical_gateway.healthcare.fhir_search import FHIRResourceSearch
from clinical_gateway.models.base import Base
from tests.mocks import FakeFHIRStore

TEST_TOKEN = "test-bearer-token"


@pytest.fixture
def settings():
    """Settings pointing at the test FHIR store."""
    return Settings(
        _env_file=None,
        google_cloud_project="test-project",
        cloud_health_location="europe-west4",
        cloud_health_dataset_id="test-dataset",
        cloud_health_fhirstore_id="test-store",
        database_url="sqlite://",
    )


@pytest.fixture
def fhir_store():
    """An empty in-memory FHIR store."""
    return FakeFHIRStore()


@pytest.fixture
def gateway(settings, fhir_store):
    """Gateway routed to the in-memory FHIR store."""
    return FHIRStoreGateway(
        settings,
        credentials=StaticBearerTokenProvider(TEST_TOKEN),
        transport=fhir_store.transport(),
    )


@pytest.fixture
def search(gateway):
    """Search facade over the in-memory FHIR store."""
    return FHIRResourceSearch(gateway)


@pytest.fixture
def session_factory():
    """Session context managers over a fresh in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)

    @contextmanager
    def factory():
        session = SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    yield factory
    engine.dispose()
