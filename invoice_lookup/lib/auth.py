"""Bearer credentials for the billing API.

Credential acquisition is delegated to a :class:`TokenProvider`. The engine
only ever asks for a header; it never refreshes or stores secrets itself.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from invoice_lookup.lib.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = [
    "TokenProvider",
    "StaticTokenProvider",
    "AzureClientSecretTokenProvider",
    "build_auth_headers",
]

MANAGEMENT_SCOPE = "https://management.azure.com/.default"

# Refresh this many seconds before the token's reported expiry
_EXPIRY_SKEW = 120


@runtime_checkable
class TokenProvider(Protocol):
    """Anything that can hand out a bearer token."""

    async def get_token(self) -> str: ...


class StaticTokenProvider:
    """Token provider for a pre-issued bearer token."""

    def __init__(self, token: str) -> None:
        if not token:
            raise ConfigurationError("Bearer token must not be empty", field="token")
        self._token = token

    async def get_token(self) -> str:
        return self._token


class AzureClientSecretTokenProvider:
    """Client-credentials flow via azure-identity.

    The synchronous ``ClientSecretCredential`` runs in a worker thread so
    token acquisition never blocks other scope tasks. Tokens are cached until
    shortly before they expire.
    """

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        *,
        scope: str = MANAGEMENT_SCOPE,
        credential: Optional[Any] = None,
    ) -> None:
        if credential is None:
            from azure.identity import ClientSecretCredential

            credential = ClientSecretCredential(
                tenant_id=tenant_id,
                client_id=client_id,
                client_secret=client_secret,
            )
        self._credential = credential
        self._scope = scope
        self._token: Optional[str] = None
        self._expires_on: float = 0.0
        self._lock = asyncio.Lock()

    async def get_token(self) -> str:
        async with self._lock:
            if self._token and time.time() < self._expires_on - _EXPIRY_SKEW:
                return self._token

            access_token = await asyncio.to_thread(
                self._credential.get_token, self._scope
            )
            if not access_token or not access_token.token:
                raise ConfigurationError(
                    "Failed to get Azure access token",
                    field="credential",
                    suggestion="Check AZURE_TENANT_ID, AZURE_CLIENT_ID and AZURE_CLIENT_SECRET.",
                )
            self._token = access_token.token
            self._expires_on = float(access_token.expires_on)
            logger.debug("Acquired Azure management token")
            return self._token


async def build_auth_headers(
    provider: TokenProvider,
    *,
    extra_headers: Optional[Dict[str, str]] = None,
) -> Dict[str, str]:
    """Build HTTP headers carrying the provider's bearer token.

    Example:
        headers = await build_auth_headers(StaticTokenProvider("abc"))
        # {"Accept": "application/json", "Content-Type": "application/json",
        #  "Authorization": "Bearer abc"}
    """
    headers: Dict[str, str] = {
        "Accept": "application/json",
        "Content-Type": "application/json",
    }
    token = await provider.get_token()
    if not token:
        raise ConfigurationError("Bearer token resolved to empty string", field="token")
    headers["Authorization"] = f"Bearer {token}"

    if extra_headers:
        headers.update(extra_headers)

    return headers
