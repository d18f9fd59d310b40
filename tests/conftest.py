"""Pytest configuration and fixtures."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from invoice_lookup.lib.auth import StaticTokenProvider
from invoice_lookup.lib.client import BillingApiClient


def _route_key(method: str, url: httpx.URL) -> str:
    return f"{method} {url.host}{url.path}"


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class ScriptedResponses:
    """Transport handler serving queued responses per (method, path) key.

    The last response of a queue is repeated once the queue runs dry.
    """

    def __init__(self) -> None:
        self.routes: Dict[str, List[Any]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, url: str, *responses: Any) -> "ScriptedResponses":
        key = _route_key(method, httpx.URL(url))
        self.routes.setdefault(key, []).extend(responses)
        return self

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = _route_key(request.method, request.url)
        queue = self.routes.get(key)
        if not queue:
            return httpx.Response(404, json={"error": {"code": "NotFound"}})
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        # fresh copy so a repeated response is never reused by the client
        return httpx.Response(item.status_code, headers=item.headers, content=item.content)

    def calls(self, method: str, url: str) -> int:
        target = _route_key(method, httpx.URL(url))
        return sum(1 for r in self.requests if _route_key(r.method, r.url) == target)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def scripted() -> ScriptedResponses:
    return ScriptedResponses()


@pytest.fixture
def make_client() -> Callable[..., BillingApiClient]:
    """Factory for a BillingApiClient backed by an httpx.MockTransport."""

    def _make(
        handler: Callable[[httpx.Request], httpx.Response],
        token: Optional[str] = "test-token",
    ) -> BillingApiClient:
        return BillingApiClient(
            StaticTokenProvider(token or "test-token"),
            transport=httpx.MockTransport(handler),
        )

    return _make


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Any) -> None:
    """Remove lookup-related environment variables and run from an empty dir."""
    import os

    for name in list(os.environ):
        if name.startswith("AZURE_") or name.startswith("INVOICE_LOOKUP_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
