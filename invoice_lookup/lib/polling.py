"""Long-running operation poller.

Drives the Azure "submit, then poll the Location URL until ready" protocol:

    Submitting --200--> Ready
    Submitting --202 + Location--> Polling
    Polling --200--> Ready
    Polling --202--> Polling   (wait Retry-After, else the default)
    Polling --404--> Polling   (exponential backoff, fail fast after N in a row)
    Polling --other--> Failed
    Polling --attempts exhausted--> TimedOut

Each iteration classifies the response into a :data:`PollOutcome` and
derives a fresh :class:`PollState`; nothing is mutated across iterations.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Generic, Optional, Type, TypeVar, Union

import httpx
from pydantic import BaseModel, ValidationError

from invoice_lookup.lib.client import BillingApiClient, is_http_url
from invoice_lookup.lib.documents import DocumentDownloadResult
from invoice_lookup.lib.errors import (
    DocumentSchemaError,
    InvalidPollLocationError,
    OperationFailedError,
    OperationNotFoundError,
    OperationTimeoutError,
)

logger = logging.getLogger(__name__)

__all__ = [
    "Failed",
    "OperationHandle",
    "OperationPoller",
    "Pending",
    "PollConfig",
    "PollOutcome",
    "PollState",
    "Ready",
    "TransientMissing",
    "classify_poll_response",
    "not_found_backoff",
    "parse_retry_after",
]

M = TypeVar("M", bound=BaseModel)
SleepFn = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class PollConfig:
    """Bounds and delays for one poll invocation (seconds)."""

    max_attempts: int = 18
    not_found_threshold: int = 5
    not_found_initial_delay: float = 0.5
    not_found_max_delay: float = 15.0
    default_retry_after: float = 10.0

    @classmethod
    def from_settings(cls, settings: Any) -> "PollConfig":
        return cls(
            max_attempts=settings.poll_max_attempts,
            not_found_threshold=settings.poll_not_found_threshold,
            default_retry_after=settings.poll_default_retry_after,
        )


@dataclass(frozen=True)
class OperationHandle:
    """One in-flight operation, identified by its poll URL."""

    status_url: str
    submitted_at: datetime
    retry_after: Optional[float] = None


@dataclass(frozen=True)
class Ready(Generic[M]):
    payload: M


@dataclass(frozen=True)
class Pending:
    retry_after: Optional[float] = None


@dataclass(frozen=True)
class TransientMissing:
    pass


@dataclass(frozen=True)
class Failed:
    reason: str
    status_code: Optional[int] = None
    schema_error: Optional[Exception] = None


PollOutcome = Union[Ready, Pending, TransientMissing, Failed]


@dataclass(frozen=True)
class PollState:
    """Counters carried from one poll iteration to the next."""

    attempt: int = 0
    consecutive_not_found: int = 0
    last_status: Optional[int] = None
    # The previous iteration already waited (404 backoff)
    backed_off: bool = False
    pending_retry_after: Optional[float] = None

    def after(self, outcome: PollOutcome, status: int) -> "PollState":
        if isinstance(outcome, TransientMissing):
            return replace(
                self,
                attempt=self.attempt + 1,
                consecutive_not_found=self.consecutive_not_found + 1,
                last_status=status,
                backed_off=True,
                pending_retry_after=None,
            )
        return replace(
            self,
            attempt=self.attempt + 1,
            consecutive_not_found=0,
            last_status=status,
            backed_off=False,
            pending_retry_after=outcome.retry_after if isinstance(outcome, Pending) else None,
        )


def parse_retry_after(value: Optional[str], default: float) -> Optional[float]:
    """Parse a ``Retry-After`` header given in seconds.

    Returns None when the header is absent and ``default`` when it is
    present but not a non-negative number.
    """
    if value is None:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return default
    if seconds != seconds or seconds < 0 or seconds == float("inf"):
        return default
    return seconds


def not_found_backoff(consecutive: int, config: PollConfig) -> float:
    """Delay after the ``consecutive``-th 404 in a row."""
    delay = config.not_found_initial_delay * (2 ** max(0, consecutive - 1))
    return min(config.not_found_max_delay, delay)


def _validate_payload(response: httpx.Response, model: Type[M]) -> M:
    try:
        return model.model_validate(response.json())
    except (ValidationError, ValueError) as exc:
        raise DocumentSchemaError(
            "Invalid document response data",
            model=model.__name__,
            cause=exc,
        ) from exc


def classify_poll_response(
    response: httpx.Response,
    model: Type[M],
    default_retry_after: float = 10.0,
) -> PollOutcome:
    """Classify one poll response."""
    status = response.status_code
    if status == 200:
        try:
            return Ready(_validate_payload(response, model))
        except DocumentSchemaError as exc:
            return Failed("response body failed validation", status, schema_error=exc)
    if status == 404:
        return TransientMissing()
    if status == 202:
        return Pending(parse_retry_after(response.headers.get("retry-after"), default_retry_after))
    return Failed(f"unexpected polling status {status}", status)


class OperationPoller(Generic[M]):
    """Resolve one long-running operation to its final payload.

    Example:
        poller = OperationPoller(client)
        result = await poller.run(lambda: client.post(client.download_url(scope, name)))
        print(result.url)
    """

    def __init__(
        self,
        client: BillingApiClient,
        config: Optional[PollConfig] = None,
        *,
        result_model: Type[M] = DocumentDownloadResult,  # type: ignore[assignment]
        sleep: Optional[SleepFn] = None,
    ) -> None:
        self.client = client
        self.config = config or PollConfig()
        self.result_model = result_model
        self._sleep = sleep or asyncio.sleep

    async def run(self, submit: Callable[[], Awaitable[httpx.Response]]) -> M:
        """Submit the initiating request and poll it to completion.

        Raises:
            DocumentSchemaError: A 200 body did not match ``result_model``
            InvalidPollLocationError: 202 carried an unusable Location
            OperationNotFoundError: Too many consecutive 404s on the poll URL
            OperationFailedError: Any other unexpected status
            OperationTimeoutError: Attempts exhausted while still pending
        """
        response = await submit()
        started = self.start(response)
        if isinstance(started, OperationHandle):
            return await self.poll(started)
        return started

    def start(self, response: httpx.Response) -> Union[M, OperationHandle]:
        """Interpret the initiating response (the Submitting state)."""
        status = response.status_code
        if status == 200:
            return _validate_payload(response, self.result_model)

        if status == 202:
            location = response.headers.get("location")
            if not location:
                raise OperationFailedError(
                    "Accepted response carried no Location header",
                    status_code=status,
                )
            if not is_http_url(location):
                raise InvalidPollLocationError(
                    f"Invalid poll location URL received from Azure: {location[:100]}",
                    status_code=status,
                    status_url=location,
                )
            return OperationHandle(
                status_url=location,
                submitted_at=datetime.now(timezone.utc),
                retry_after=parse_retry_after(
                    response.headers.get("retry-after"), self.config.default_retry_after
                ),
            )

        raise OperationFailedError(
            "Failed to submit document download",
            status_code=status,
        )

    def _pending_delay(self, state: PollState, handle: OperationHandle) -> float:
        if state.pending_retry_after is not None:
            return state.pending_retry_after
        if handle.retry_after is not None:
            return handle.retry_after
        return self.config.default_retry_after

    async def poll(self, handle: OperationHandle) -> M:
        """Poll ``handle`` until ready (the Polling state)."""
        config = self.config
        state = PollState()

        while state.attempt < config.max_attempts:
            if state.attempt > 0 and not state.backed_off:
                delay = self._pending_delay(state, handle)
                if delay > 0:
                    await self._sleep(delay)

            response = await self.client.get(handle.status_url)
            outcome = classify_poll_response(
                response, self.result_model, config.default_retry_after
            )

            if isinstance(outcome, Ready):
                logger.debug(
                    "Operation ready after %d poll(s): %s",
                    state.attempt + 1,
                    handle.status_url[:100],
                )
                return outcome.payload

            if isinstance(outcome, Failed):
                if outcome.schema_error is not None:
                    raise outcome.schema_error
                raise OperationFailedError(
                    "Failed while polling invoice document generation",
                    status_code=outcome.status_code,
                    status_url=handle.status_url,
                )

            state = state.after(outcome, response.status_code)

            if isinstance(outcome, TransientMissing):
                if state.consecutive_not_found >= config.not_found_threshold:
                    raise OperationNotFoundError(
                        f"Poll location returned 404 {config.not_found_threshold} "
                        "times consecutively",
                        consecutive_not_found=state.consecutive_not_found,
                        status_code=404,
                        status_url=handle.status_url,
                    )
                if state.attempt >= config.max_attempts:
                    break
                backoff = not_found_backoff(state.consecutive_not_found, config)
                logger.warning(
                    "Poll returned 404 (attempt %d/%d, consecutive 404s: %d/%d). "
                    "Backing off for %.1fs and retrying...",
                    state.attempt,
                    config.max_attempts,
                    state.consecutive_not_found,
                    config.not_found_threshold,
                    backoff,
                )
                await self._sleep(backoff)

        raise OperationTimeoutError(
            "Timed out waiting for invoice document to be ready",
            attempts=state.attempt,
            last_status=state.last_status,
            status_url=handle.status_url,
        )
