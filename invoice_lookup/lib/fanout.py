"""Concurrent resolution across billing account scopes.

The same single-scope operation runs against every scope at once. All tasks
are awaited (a fast success never cancels a slower sibling) and the outcomes
are folded in input order: the first scope that succeeded wins.

A scope failure means "this scope has no answer". It is logged and
swallowed, so "not found anywhere" and "every scope errored" both come back
as None. A ConfigurationError is not scope-local and propagates.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar, Union

from invoice_lookup.lib.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = [
    "ScopeFailure",
    "ScopeResult",
    "ScopeSuccess",
    "first_success",
    "gather_scope_results",
    "resolve_across_scopes",
]

T = TypeVar("T")


@dataclass(frozen=True)
class ScopeSuccess(Generic[T]):
    scope: str
    value: T


@dataclass(frozen=True)
class ScopeFailure:
    scope: str
    error: BaseException


ScopeResult = Union[ScopeSuccess[T], ScopeFailure]


async def gather_scope_results(
    scopes: Sequence[str],
    per_scope_operation: Callable[[str], Awaitable[T]],
) -> List[ScopeResult[T]]:
    """Run ``per_scope_operation`` for every scope and return ordered outcomes.

    The result list lines up with ``scopes`` regardless of completion order.

    Raises:
        ConfigurationError: Raised by any scope, after every scope settled
    """
    if not scopes:
        return []

    tasks = [per_scope_operation(scope) for scope in scopes]
    outcomes = await asyncio.gather(*tasks, return_exceptions=True)

    results: List[ScopeResult[T]] = []
    for scope, outcome in zip(scopes, outcomes):
        if isinstance(outcome, (asyncio.CancelledError, ConfigurationError)):
            raise outcome
        if isinstance(outcome, BaseException):
            results.append(ScopeFailure(scope, outcome))
        else:
            results.append(ScopeSuccess(scope, outcome))
    return results


def first_success(results: Sequence[ScopeResult[T]]) -> Optional[ScopeSuccess[T]]:
    """Return the first successful result in order, logging the failures."""
    winner: Optional[ScopeSuccess[T]] = None
    for result in results:
        if isinstance(result, ScopeFailure):
            logger.warning(
                "Scope %s failed: %s: %s",
                result.scope,
                type(result.error).__name__,
                result.error,
            )
        elif winner is None:
            winner = result
    return winner


async def resolve_across_scopes(
    scopes: Sequence[str],
    per_scope_operation: Callable[[str], Awaitable[T]],
) -> Optional[T]:
    """Resolve a value across scopes: first success in input order, else None.

    Example:
        document = await resolve_across_scopes(
            ["1234:5678", "9999:0000"],
            lambda scope: fetch_document(client, scope, "G012345678"),
        )
    """
    results = await gather_scope_results(scopes, per_scope_operation)
    winner = first_success(results)
    if winner is None:
        logger.info("No scope produced a result (%d scope(s) queried)", len(results))
        return None
    logger.debug("Resolved from scope %s", winner.scope)
    return winner.value
