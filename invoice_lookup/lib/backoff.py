"""Backoff delay computation.

Pure functions only: given an attempt number and a :class:`RetryOptions`
instance, compute how long to wait before the next attempt.
"""

from __future__ import annotations

from dataclasses import dataclass

from invoice_lookup.lib.errors import ConfigurationError

__all__ = ["RetryOptions", "delay_for"]


@dataclass(frozen=True)
class RetryOptions:
    """Backoff configuration for retried operations.

    All delays are in seconds.

    Examples:
        # Default: 1s, 2s, 4s ... capped at 30s
        options = RetryOptions()

        # Flat half-second delay between attempts
        options = RetryOptions(initial_delay=0.5, exponential=False)

        # No delay at all (tests)
        options = RetryOptions(initial_delay=0.0)
    """

    initial_delay: float = 1.0
    max_delay: float = 30.0
    exponential: bool = True

    def __post_init__(self) -> None:
        if self.initial_delay < 0:
            raise ConfigurationError(
                "initial_delay must be non-negative",
                field="initial_delay",
                value=self.initial_delay,
            )
        if self.max_delay < 0:
            raise ConfigurationError(
                "max_delay must be non-negative",
                field="max_delay",
                value=self.max_delay,
            )

    @classmethod
    def none(cls) -> "RetryOptions":
        """No delay between attempts."""
        return cls(initial_delay=0.0, max_delay=0.0)


def delay_for(attempt_index: int, options: RetryOptions) -> float:
    """Return the delay to wait after ``attempt_index`` fails.

    ``attempt_index`` is 1-based. Exponential policies double the initial
    delay on every attempt; both policies are capped at ``max_delay``.

    Example:
        >>> opts = RetryOptions(initial_delay=1.0, max_delay=5.0)
        >>> [delay_for(i, opts) for i in range(1, 6)]
        [1.0, 2.0, 4.0, 5.0, 5.0]
    """
    if attempt_index < 1:
        raise ValueError(f"attempt_index must be >= 1, got {attempt_index}")

    if options.exponential:
        base = options.initial_delay * (2 ** (attempt_index - 1))
    else:
        base = options.initial_delay
    return float(min(base, options.max_delay))
