"""Tests for dataset and FHIR store provisioning."""

import json

import httpx
import pytest

from clinical_gateway.core.exceptions import FHIRStoreSetupError
from clinical_gateway.healthcare.fhir_credentials import StaticBearerTokenProvider
from clinical_gateway.healthcare.fhir_gateway import FHIRStoreGateway
from clinical_gateway.healthcare.fhir_store_setup import (
    FHIR_STORE_CONFIG,
    ensure_dataset,
    ensure_fhir_store,
)
from tests.conftest import TEST_TOKEN

DATASET_PATH = "/v1/projects/test-project/locations/europe-west4/datasets/test-dataset"
STORE_RESOURCE_PATH = f"{DATASET_PATH}/fhirStores/test-store"


class FakeHealthcareAPI:
    """Datasets and FHIR stores the admin API knows about."""

    def __init__(self, dataset=True, store=True, create_status=200, lookup_status=None):
        self.dataset = dataset
        self.store = store
        self.create_status = create_status
        self.lookup_status = lookup_status
        self.created = []

    def handle(self, request):
        path = request.url.path
        if request.method == "GET":
            if self.lookup_status:
                return httpx.Response(self.lookup_status, json={})
            exists = {DATASET_PATH: self.dataset, STORE_RESOURCE_PATH: self.store}
            return httpx.Response(200 if exists.get(path) else 404, json={})

        self.created.append(request)
        if self.create_status >= 300:
            return httpx.Response(self.create_status, json={"error": "denied"})
        if path.endswith("/datasets"):
            self.dataset = True
        elif path.endswith("/fhirStores"):
            self.store = True
        return httpx.Response(self.create_status, json={})


@pytest.fixture
def admin_api():
    return FakeHealthcareAPI()


def make_gateway(settings, api):
    return FHIRStoreGateway(
        settings,
        credentials=StaticBearerTokenProvider(TEST_TOKEN),
        transport=httpx.MockTransport(api.handle),
    )


@pytest.mark.asyncio
async def test_existing_store_is_left_alone(settings, admin_api):
    """Nothing is created when both resources exist."""
    created = await ensure_fhir_store(make_gateway(settings, admin_api))

    assert created is False
    assert admin_api.created == []


@pytest.mark.asyncio
async def test_missing_store_is_created_as_r4(settings):
    """A missing store is created with the R4 configuration."""
    api = FakeHealthcareAPI(store=False)

    created = await ensure_fhir_store(make_gateway(settings, api))

    assert created is True
    assert len(api.created) == 1
    request = api.created[0]
    assert request.url.path == f"{DATASET_PATH}/fhirStores"
    assert request.url.params["fhirStoreId"] == "test-store"
    assert json.loads(request.content) == FHIR_STORE_CONFIG
    assert FHIR_STORE_CONFIG["version"] == "R4"
    assert FHIR_STORE_CONFIG["enableUpdateCreate"] is True


@pytest.mark.asyncio
async def test_missing_dataset_is_created_first(settings):
    """The dataset is created before the store inside it."""
    api = FakeHealthcareAPI(dataset=False, store=False)

    assert await ensure_fhir_store(make_gateway(settings, api)) is True

    paths = [r.url.path for r in api.created]
    assert paths == [
        "/v1/projects/test-project/locations/europe-west4/datasets",
        f"{DATASET_PATH}/fhirStores",
    ]
    assert api.created[0].url.params["datasetId"] == "test-dataset"


@pytest.mark.asyncio
async def test_ensure_dataset_reports_creation(settings):
    api = FakeHealthcareAPI(dataset=False)

    assert await ensure_dataset(make_gateway(settings, api)) is True
    assert await ensure_dataset(make_gateway(settings, api)) is False


@pytest.mark.asyncio
async def test_create_failure_raises_setup_error(settings):
    """A refused create is a setup error."""
    api = FakeHealthcareAPI(store=False, create_status=403)

    with pytest.raises(FHIRStoreSetupError, match="test-store"):
        await ensure_fhir_store(make_gateway(settings, api))


@pytest.mark.asyncio
async def test_store_created_concurrently_is_not_an_error(settings):
    """A 409 on create means another process won the race."""
    api = FakeHealthcareAPI(store=False, create_status=409)

    assert await ensure_fhir_store(make_gateway(settings, api)) is False
    assert len(api.created) == 1


@pytest.mark.asyncio
async def test_dataset_created_concurrently_is_not_an_error(settings):
    api = FakeHealthcareAPI(dataset=False, create_status=409)

    assert await ensure_dataset(make_gateway(settings, api)) is False


@pytest.mark.asyncio
async def test_lookup_failure_raises_setup_error(settings):
    """Only a 404 means the resource is missing."""
    api = FakeHealthcareAPI(lookup_status=500)

    with pytest.raises(FHIRStoreSetupError):
        await ensure_fhir_store(make_gateway(settings, api))

    assert api.created == []
