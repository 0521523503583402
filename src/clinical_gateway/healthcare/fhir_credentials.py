"""Bearer credentials for the Cloud Healthcare API.

A token is requested for every FHIR store call. Token caching and refresh
scheduling belong to the identity provider, not to this gateway.
"""

import asyncio
from typing import Any, List, Optional, Protocol

import google.auth
import google.auth.transport.requests
from google.auth.exceptions import GoogleAuthError

from clinical_gateway.core.exceptions import CredentialsError
from clinical_gateway.utils.logging import get_logger

logger = get_logger(__name__)

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


class BearerTokenProvider(Protocol):
    """Anything that can hand out a bearer token for the FHIR store."""

    async def get_token(self) -> str:
        """Return a bearer token without the ``Bearer`` prefix."""


class GoogleBearerTokenProvider:
    """Token provider backed by Google application default credentials."""

    def __init__(self, scopes: Optional[List[str]] = None) -> None:
        """Initialize the provider.

        Args:
            scopes: OAuth scopes to request, cloud-platform by default
        """
        self.scopes = scopes or [CLOUD_PLATFORM_SCOPE]

    def _fetch_token(self) -> str:
        try:
            credentials: Any
            credentials, _ = google.auth.default(scopes=self.scopes)
            credentials.refresh(google.auth.transport.requests.Request())
        except GoogleAuthError as e:
            logger.error("bearer_token_unavailable", error=str(e))
            raise CredentialsError(f"unable to obtain bearer token: {e}") from e

        if not credentials.token:
            raise CredentialsError("identity provider returned an empty token")
        token: str = credentials.token
        return token

    async def get_token(self) -> str:
        """Fetch a fresh token off the event loop."""
        return await asyncio.to_thread(self._fetch_token)


class StaticBearerTokenProvider:
    """Token provider returning a fixed token, for local stores and tests."""

    def __init__(self, token: str) -> None:
        """Initialize with the token to hand out."""
        if not token:
            raise CredentialsError("a static bearer token cannot be empty")
        self.token = token

    async def get_token(self) -> str:
        """Return the configured token."""
        return self.token
