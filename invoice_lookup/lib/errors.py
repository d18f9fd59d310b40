"""Structured exception hierarchy for invoice lookups.

Provides specific exception types for the failure modes of the billing API
resolution engine, with rich context for debugging and troubleshooting.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

__all__ = [
    "InvoiceLookupError",
    "ConfigurationError",
    "ApiRequestError",
    "DocumentSchemaError",
    "OperationFailedError",
    "InvalidPollLocationError",
    "OperationNotFoundError",
    "OperationTimeoutError",
    "DocumentNotFoundError",
]


class InvoiceLookupError(Exception):
    """Base exception for all invoice lookup errors.

    Provides structured error information for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        scope: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        self.message = message
        self.scope = scope
        self.details = dict(details or {})
        self.suggestion = suggestion

        parts = [message]

        if scope:
            parts.insert(0, f"[{scope}]")

        if details:
            detail_lines = [f"  {k}: {v}" for k, v in details.items()]
            parts.append("\nDetails:")
            parts.extend(detail_lines)

        if suggestion:
            parts.append(f"\nSuggestion: {suggestion}")

        super().__init__("\n".join(parts) if len(parts) > 1 else message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "scope": self.scope,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class ConfigurationError(InvoiceLookupError):
    """Invalid or incomplete configuration.

    Raised for caller bugs (e.g. ``max_attempts < 1``) and missing settings.
    Never retried.
    """

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value

        details = dict(kwargs.pop("details", None) or {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)

        super().__init__(message, details=details, **kwargs)


class ApiRequestError(InvoiceLookupError):
    """The billing API answered with a non-success status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        body: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        self.status_code = status_code
        self.url = url

        details = dict(kwargs.pop("details", None) or {})
        if status_code is not None:
            details["status_code"] = status_code
        if url:
            details["url"] = url
        if body:
            details["body"] = body[:200]

        super().__init__(message, details=details, **kwargs)


class DocumentSchemaError(InvoiceLookupError):
    """A response body did not match the expected shape.

    Terminal for the attempt that saw it: a malformed body does not become
    well-formed by waiting.
    """

    def __init__(
        self,
        message: str,
        *,
        model: Optional[str] = None,
        cause: Optional[Exception] = None,
        **kwargs: Any,
    ) -> None:
        self.model = model
        self.cause = cause

        details = dict(kwargs.pop("details", None) or {})
        if model:
            details["model"] = model
        if cause:
            details["cause"] = str(cause).splitlines()[0]
            details["cause_type"] = type(cause).__name__

        super().__init__(message, details=details, **kwargs)


class OperationFailedError(InvoiceLookupError):
    """The server rejected or broke a long-running operation."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        status_url: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        self.status_code = status_code
        self.status_url = status_url

        details = dict(kwargs.pop("details", None) or {})
        if status_code is not None:
            details["status_code"] = status_code
        if status_url:
            details["status_url"] = status_url[:100]

        super().__init__(message, details=details, **kwargs)


class InvalidPollLocationError(OperationFailedError):
    """The ``Location`` header of a 202 response is not a usable URL."""


class OperationNotFoundError(OperationFailedError):
    """The poll URL kept answering 404; the operation is presumed missing."""

    def __init__(
        self,
        message: str,
        *,
        consecutive_not_found: int = 0,
        **kwargs: Any,
    ) -> None:
        self.consecutive_not_found = consecutive_not_found

        details = dict(kwargs.pop("details", None) or {})
        details["consecutive_not_found"] = consecutive_not_found

        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = (
                "The operation may not exist or the location URL may be invalid. "
                "Submit the download request again."
            )

        super().__init__(message, details=details, suggestion=suggestion, **kwargs)


class OperationTimeoutError(InvoiceLookupError):
    """The server never finished the operation within the attempt ceiling.

    Distinct from :class:`OperationFailedError` so callers can tell a slow
    backend from a rejected request.
    """

    def __init__(
        self,
        message: str,
        *,
        attempts: int,
        last_status: Optional[int] = None,
        status_url: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        self.attempts = attempts
        self.last_status = last_status
        self.status_url = status_url

        details = dict(kwargs.pop("details", None) or {})
        details["attempts"] = attempts
        if last_status is not None:
            details["last_status"] = last_status
        if status_url:
            details["status_url"] = status_url[:100]

        super().__init__(message, details=details, **kwargs)


class DocumentNotFoundError(InvoiceLookupError):
    """A scope answered but no invoice document link could be found."""

    def __init__(
        self,
        message: str,
        *,
        invoice_name: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        self.invoice_name = invoice_name

        details = dict(kwargs.pop("details", None) or {})
        if invoice_name:
            details["invoice_name"] = invoice_name

        super().__init__(message, details=details, **kwargs)
