"""Async HTTP client for the Azure Billing management API.

A single pooled ``httpx.AsyncClient`` is shared by every scope task. The
client only builds URLs and attaches credentials; status handling belongs to
the callers (poller, resolvers), which need to see raw 202/404 responses.

Example:
    async with BillingApiClient(StaticTokenProvider(token)) as client:
        response = await client.get(client.invoice_url("1234:5678", "G0123"))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
import requests_toolbelt
import tenacity
from requests_toolbelt.utils.user_agent import user_agent

from invoice_lookup import __version__
from invoice_lookup.lib.auth import TokenProvider, build_auth_headers
from invoice_lookup.lib.errors import ApiRequestError
from invoice_lookup.lib.settings import DEFAULT_API_VERSION, MANAGEMENT_URL

logger = logging.getLogger(__name__)

__all__ = ["BillingApiClient", "HttpPoolConfig", "is_http_url", "raise_for_status"]

_USER_AGENT = user_agent(
    "invoice-lookup",
    __version__,
    extras=[
        ("httpx", getattr(httpx, "__version__", "unknown")),
        ("tenacity", getattr(tenacity, "__version__", "unknown")),
        ("requests-toolbelt", getattr(requests_toolbelt, "__version__", "unknown")),
    ],
)

BILLING_PROVIDER_PATH = "/providers/Microsoft.Billing/billingAccounts"


@dataclass
class HttpPoolConfig:
    """Connection pool limits for the shared httpx client."""

    max_connections: int = 20
    max_keepalive_connections: int = 10
    keepalive_expiry: float = 30.0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "HttpPoolConfig":
        if data is None:
            return cls()
        return cls(
            max_connections=data.get("max_connections", 20),
            max_keepalive_connections=data.get("max_keepalive_connections", 10),
            keepalive_expiry=data.get("keepalive_expiry", 30.0),
        )


def is_http_url(value: Any) -> bool:
    """Return True if ``value`` is an absolute http(s) URL."""
    if not isinstance(value, str) or not value.strip():
        return False
    try:
        url = httpx.URL(value)
    except (httpx.InvalidURL, TypeError, ValueError):
        return False
    return url.scheme in ("http", "https") and bool(url.host)


def raise_for_status(response: httpx.Response, message: str, *, scope: Optional[str] = None) -> None:
    """Raise :class:`ApiRequestError` unless the response is 2xx."""
    if response.is_success:
        return
    try:
        body = response.text
    except httpx.ResponseNotRead:
        body = ""
    raise ApiRequestError(
        message,
        status_code=response.status_code,
        url=request_url(response),
        body=body,
        scope=scope,
    )


def request_url(response: httpx.Response) -> Optional[str]:
    """URL of the request behind ``response``, if it has one."""
    try:
        return str(response.request.url).split("?")[0]
    except RuntimeError:
        return None


class BillingApiClient:
    """Thin async client for billing-account scoped endpoints."""

    def __init__(
        self,
        token_provider: TokenProvider,
        *,
        base_url: str = MANAGEMENT_URL,
        api_version: str = DEFAULT_API_VERSION,
        timeout: float = 30.0,
        pool_config: Optional[HttpPoolConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.token_provider = token_provider
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.timeout = timeout
        self._pool_config = pool_config or HttpPoolConfig()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.requests_made = 0

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            limits = httpx.Limits(
                max_connections=self._pool_config.max_connections,
                max_keepalive_connections=self._pool_config.max_keepalive_connections,
                keepalive_expiry=self._pool_config.keepalive_expiry,
            )
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                limits=limits,
                transport=self._transport,
                headers={"User-Agent": _USER_AGENT},
            )
            logger.debug(
                "Created pooled httpx client with limits: max=%d, keepalive=%d",
                self._pool_config.max_connections,
                self._pool_config.max_keepalive_connections,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client and release connections."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.debug("Closed billing client after %d requests", self.requests_made)

    async def __aenter__(self) -> "BillingApiClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # URL builders -------------------------------------------------------

    def account_url(self, scope: str) -> str:
        return f"{self.base_url}{BILLING_PROVIDER_PATH}/{quote(scope, safe=':')}"

    def invoices_url(self, scope: str) -> str:
        return f"{self.account_url(scope)}/invoices"

    def invoice_url(self, scope: str, invoice_name: str) -> str:
        return f"{self.invoices_url(scope)}/{quote(invoice_name, safe='')}"

    def download_url(self, scope: str, invoice_name: str) -> str:
        return f"{self.invoice_url(scope, invoice_name)}/download"

    def transactions_url(self, scope: str, invoice_name: str) -> str:
        return f"{self.invoice_url(scope, invoice_name)}/transactions"

    # Requests -----------------------------------------------------------

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        with_api_version: bool = True,
    ) -> httpx.Response:
        """Send an authenticated request and return the raw response.

        ``api-version`` is added unless the URL already carries one (poll
        locations and ``nextLink`` values are fully qualified by the server).
        """
        headers = await build_auth_headers(self.token_provider)
        query: Dict[str, Any] = dict(params or {})
        if with_api_version and "api-version=" not in url:
            query.setdefault("api-version", self.api_version)

        self.requests_made += 1
        logger.debug("%s %s", method, url)
        return await self._get_client().request(
            method,
            url,
            params=query or None,
            json=json,
            headers=headers,
        )

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def get_json(self, url: str, *, scope: Optional[str] = None, **kwargs: Any) -> Any:
        """GET ``url`` and decode JSON, raising ApiRequestError on non-2xx."""
        response = await self.get(url, **kwargs)
        raise_for_status(response, f"Request failed: GET {url.split('?')[0]}", scope=scope)
        return response.json()
