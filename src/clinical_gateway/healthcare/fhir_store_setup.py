"""Dataset and FHIR store provisioning.

``ensure_fhir_store`` is called once by the hosting process at start up. It is
idempotent: existing resources are left untouched.
"""

from typing import Any, Dict

from clinical_gateway.core.exceptions import FHIRStoreHTTPError, FHIRStoreSetupError
from clinical_gateway.healthcare.fhir_gateway import PLAIN_JSON, FHIRStoreGateway
from clinical_gateway.utils.logging import get_logger

logger = get_logger(__name__)

# Another process created the resource between lookup and create
ALREADY_EXISTS = 409

FHIR_STORE_CONFIG: Dict[str, Any] = {
    "version": "R4",
    "enableUpdateCreate": True,
    "disableReferentialIntegrity": False,
    "disableResourceVersioning": False,
}


async def _exists(gateway: FHIRStoreGateway, url: str) -> bool:
    try:
        await gateway.request("GET", url, content_type=PLAIN_JSON)
    except FHIRStoreHTTPError as e:
        if e.status_code == 404:
            return False
        raise FHIRStoreSetupError(f"unable to look up {url}: {e}") from e
    return True


async def ensure_dataset(gateway: FHIRStoreGateway) -> bool:
    """Get or create the healthcare dataset.

    Returns:
        True if the dataset had to be created
    """
    if await _exists(gateway, gateway.dataset_url()):
        return False

    try:
        await gateway.request(
            "POST",
            f"{gateway.location_url()}/datasets",
            params={"datasetId": str(gateway.dataset_id)},
            body={},
            content_type=PLAIN_JSON,
        )
    except FHIRStoreHTTPError as e:
        if e.status_code == ALREADY_EXISTS:
            logger.info("dataset_created_concurrently", dataset_id=gateway.dataset_id)
            return False
        logger.error(
            "dataset_create_failed",
            project_id=gateway.project_id,
            location=gateway.location,
            dataset_id=gateway.dataset_id,
            status_code=e.status_code,
        )
        raise FHIRStoreSetupError(
            f"unable to create dataset {gateway.dataset_id}: {e}"
        ) from e

    logger.info("dataset_created", dataset_id=gateway.dataset_id)
    return True


async def ensure_fhir_store(gateway: FHIRStoreGateway) -> bool:
    """Get or create the dataset and then the R4 FHIR store inside it.

    Returns:
        True if the FHIR store had to be created
    """
    await ensure_dataset(gateway)

    if await _exists(gateway, gateway.fhir_store_url()):
        return False

    try:
        await gateway.request(
            "POST",
            f"{gateway.dataset_url()}/fhirStores",
            params={"fhirStoreId": str(gateway.fhir_store_id)},
            body=FHIR_STORE_CONFIG,
            content_type=PLAIN_JSON,
        )
    except FHIRStoreHTTPError as e:
        if e.status_code == ALREADY_EXISTS:
            logger.info(
                "fhir_store_created_concurrently", fhir_store_id=gateway.fhir_store_id
            )
            return False
        logger.error(
            "fhir_store_create_failed",
            dataset_id=gateway.dataset_id,
            fhir_store_id=gateway.fhir_store_id,
            status_code=e.status_code,
        )
        raise FHIRStoreSetupError(
            f"unable to create FHIR store {gateway.fhir_store_id}: {e}"
        ) from e

    logger.info("fhir_store_created", fhir_store_id=gateway.fhir_store_id)
    return True
