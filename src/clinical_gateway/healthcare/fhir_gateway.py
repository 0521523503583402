"""Remote FHIR store gateway.

This module composes authenticated REST calls against a Cloud Healthcare
FHIR store. Every call acquires a fresh bearer token, is bounded by the
configured timeout and buffers the whole response body. Any status code of
300 or above is raised as a FHIRStoreHTTPError carrying the method, status
and an excerpt of the body.

FHIR Compliance Keywords: Resource, Bundle, searchset
"""

import asyncio
import json
from typing import Any, Dict, List, Mapping, Optional, Union

import httpx

from clinical_gateway.config import Settings, get_settings
from clinical_gateway.core.exceptions import (
    ConfigurationError,
    FHIRStoreConnectionError,
    FHIRStoreHTTPError,
    FHIRStoreTimeoutError,
    ResourceNotFoundError,
)
from clinical_gateway.healthcare.fhir_credentials import (
    BearerTokenProvider,
    GoogleBearerTokenProvider,
)
from clinical_gateway.utils.logging import get_logger

logger = get_logger(__name__)

FHIR_JSON = "application/fhir+json; charset=utf-8"
JSON_PATCH = "application/json-patch+json"
PLAIN_JSON = "application/json"

# Bytes of an error body kept on the raised exception
ERROR_BODY_EXCERPT = 2048

Body = Union[bytes, str, Mapping[str, Any], List[Any], None]


class FHIRStoreGateway:
    """Gateway to a single Cloud Healthcare FHIR store."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        credentials: Optional[BearerTokenProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the gateway.

        Args:
            settings: Application settings, the cached instance by default
            credentials: Bearer token provider, application default
                credentials by default
            transport: Optional httpx transport, used to route calls to a
                local or in-memory store
        """
        settings = settings or get_settings()
        if not settings.fhir_store_configured:
            raise ConfigurationError(
                "the FHIR store is not configured: set GOOGLE_CLOUD_PROJECT, "
                "CLOUD_HEALTH_DATASET_ID and CLOUD_HEALTH_FHIRSTORE_ID"
            )

        self.base_url = settings.fhir_base_url.rstrip("/")
        self.project_id = settings.google_cloud_project
        self.location = settings.cloud_health_location
        self.dataset_id = settings.cloud_health_dataset_id
        self.fhir_store_id = settings.cloud_health_fhirstore_id
        self.timeout = settings.fhir_request_timeout_seconds
        self.credentials = credentials or GoogleBearerTokenProvider(
            settings.fhir_auth_scopes
        )
        self._transport = transport

    def location_url(self) -> str:
        """URL of the project location that holds the dataset."""
        return f"{self.base_url}/projects/{self.project_id}/locations/{self.location}"

    def dataset_url(self) -> str:
        """URL of the healthcare dataset."""
        return f"{self.location_url()}/datasets/{self.dataset_id}"

    def fhir_store_url(self) -> str:
        """URL of the FHIR store resource itself."""
        return f"{self.dataset_url()}/fhirStores/{self.fhir_store_id}"

    def fhir_rest_url(self) -> str:
        """Root of the FHIR REST API for manual calls."""
        return f"{self.fhir_store_url()}/fhir"

    async def _headers(self, content_type: str) -> Dict[str, str]:
        token = await self.credentials.get_token()
        return {
            "Authorization": f"Bearer {token}",
            "Accept": FHIR_JSON,
            "Content-Type": content_type,
        }

    @staticmethod
    def _encode_body(body: Body) -> Optional[bytes]:
        if body is None:
            return None
        if isinstance(body, bytes):
            return body
        if isinstance(body, str):
            return body.encode("utf-8")
        return json.dumps(body).encode("utf-8")

    async def request(
        self,
        method: str,
        url: str,
        params: Optional[Mapping[str, str]] = None,
        body: Body = None,
        content_type: str = FHIR_JSON,
    ) -> bytes:
        """Send one authenticated request and return the buffered body.

        Raises:
            FHIRStoreHTTPError: status code of 300 or above
            FHIRStoreTimeoutError: the call exceeded the configured timeout
            FHIRStoreConnectionError: the store could not be reached
        """
        headers = await self._headers(content_type)
        content = self._encode_body(body)

        try:
            # httpx bounds each phase; the outer deadline bounds the whole call
            async with asyncio.timeout(self.timeout):
                async with httpx.AsyncClient(
                    timeout=httpx.Timeout(self.timeout), transport=self._transport
                ) as client:
                    response = await client.request(
                        method,
                        url,
                        params=dict(params) if params else None,
                        content=content,
                        headers=headers,
                    )
        except (httpx.TimeoutException, TimeoutError) as e:
            logger.error(
                "fhir_store_timeout", method=method, url=url, timeout=self.timeout
            )
            raise FHIRStoreTimeoutError(
                f"{method} {url}: no response within {self.timeout}s"
            ) from e
        except httpx.RequestError as e:
            logger.error("fhir_store_unreachable", method=method, url=url, error=str(e))
            raise FHIRStoreConnectionError(f"{method} {url}: {e}") from e

        if response.status_code >= 300:
            excerpt = response.text[:ERROR_BODY_EXCERPT]
            logger.error(
                "fhir_store_http_error",
                method=method,
                url=url,
                status_code=response.status_code,
            )
            raise FHIRStoreHTTPError(method, url, response.status_code, excerpt)

        return response.content

    async def send(
        self,
        method: str,
        resource_type: str,
        sub_path: str = "",
        params: Optional[Mapping[str, str]] = None,
        body: Body = None,
        content_type: str = FHIR_JSON,
    ) -> bytes:
        """Send a request to ``{fhir root}/{resource_type}/{sub_path}``.

        Args:
            method: HTTP verb
            resource_type: FHIR resource name e.g "Appointment"
            sub_path: Optional path under the resource e.g "_search" or an ID
            params: Query parameters, already stringified
            body: JSON-serializable payload or raw bytes
            content_type: Content type of the body
        """
        parts = [self.fhir_rest_url(), resource_type]
        if sub_path:
            parts.append(sub_path.strip("/"))
        url = "/".join(parts)
        return await self.request(method, url, params, body, content_type)

    async def search(self, resource_type: str, params: Mapping[str, str]) -> bytes:
        """Run a FHIR search through ``POST {resource_type}/_search``."""
        return await self.send("POST", resource_type, "_search", params)

    async def get_resource(self, resource_type: str, resource_id: str) -> bytes:
        """Read one resource by ID.

        Raises:
            ResourceNotFoundError: the store has no such resource
        """
        try:
            return await self.send("GET", resource_type, resource_id)
        except FHIRStoreHTTPError as e:
            if e.status_code in (404, 410):
                raise ResourceNotFoundError(resource_type, resource_id) from e
            raise

    async def create_resource(
        self, resource_type: str, payload: Dict[str, Any]
    ) -> bytes:
        """Create a resource; the store assigns its ID."""
        document = {**payload, "resourceType": resource_type, "language": "EN"}
        return await self.send("POST", resource_type, body=document)

    async def update_resource(
        self, resource_type: str, resource_id: str, payload: Dict[str, Any]
    ) -> bytes:
        """Replace the whole contents of a resource."""
        document = {**payload, "resourceType": resource_type, "id": resource_id}
        return await self.send("PUT", resource_type, resource_id, body=document)

    async def patch_resource(
        self, resource_type: str, resource_id: str, operations: List[Dict[str, Any]]
    ) -> bytes:
        """Apply a JSON-Patch document, e.g ``[{"op": "replace", ...}]``."""
        return await self.send(
            "PATCH", resource_type, resource_id, body=operations, content_type=JSON_PATCH
        )

    async def delete_resource(self, resource_type: str, resource_id: str) -> bytes:
        """Delete a resource."""
        return await self.send("DELETE", resource_type, resource_id)

    async def patient_everything(self, patient_id: str) -> bytes:
        """All resources in a patient's compartment, as a searchset Bundle."""
        return await self.send("GET", "Patient", f"{patient_id}/$everything")
