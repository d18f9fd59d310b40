"""Invoice catalog: list, search and rank invoices in a billing scope.

Used for the "recent invoices" view and as a slower fallback when an invoice
cannot be fetched directly by name (the query may be a display name or an
invoice number rather than the resource name).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from invoice_lookup.lib.client import BillingApiClient, raise_for_status
from invoice_lookup.lib.fanout import gather_scope_results, ScopeSuccess

logger = logging.getLogger(__name__)

__all__ = [
    "InvoiceSummary",
    "find_invoice",
    "invoice_matches",
    "list_invoices",
    "recent_invoices",
]

MAX_RECENT = 100
_NON_DIGITS = re.compile(r"[^0-9]")


@dataclass(frozen=True)
class InvoiceSummary:
    name: str
    display_name: Optional[str] = None
    invoice_number: Optional[str] = None
    billing_period_start: Optional[str] = None
    billing_period_end: Optional[str] = None
    invoice_date: Optional[str] = None

    @classmethod
    def from_invoice(cls, invoice: Dict[str, Any]) -> "InvoiceSummary":
        properties = invoice.get("properties") or {}
        return cls(
            name=str(invoice.get("name") or ""),
            display_name=_text(invoice.get("displayName") or properties.get("displayName")),
            invoice_number=_text(invoice.get("invoiceNumber") or properties.get("invoiceNumber")),
            billing_period_start=properties.get("billingPeriodStartDate")
            or properties.get("servicePeriodStartDate"),
            billing_period_end=properties.get("billingPeriodEndDate")
            or properties.get("servicePeriodEndDate"),
            invoice_date=properties.get("invoiceDate"),
        )

    def sort_key(self) -> float:
        """Newest of the known dates, as a timestamp (-inf when none parse)."""
        stamps = [
            _timestamp(value)
            for value in (self.invoice_date, self.billing_period_end, self.billing_period_start)
        ]
        return max(stamps)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "displayName": self.display_name,
            "invoiceNumber": self.invoice_number,
            "billingPeriodStart": self.billing_period_start,
            "billingPeriodEnd": self.billing_period_end,
            "invoiceDate": self.invoice_date,
        }


def _text(value: Any) -> Optional[str]:
    return str(value) if value else None


def _timestamp(value: Optional[str]) -> float:
    if not value:
        return float("-inf")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return float("-inf")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


async def list_invoices(client: BillingApiClient, scope: str) -> List[Dict[str, Any]]:
    """All invoices of ``scope``, following ``nextLink`` pages.

    A 403 or 404 (no access, unknown scope) ends the listing quietly with
    whatever was collected; other failures raise ApiRequestError.
    """
    invoices: List[Dict[str, Any]] = []
    url: Optional[str] = client.invoices_url(scope)

    while url:
        response = await client.get(url)
        if response.status_code in (403, 404):
            logger.info("Invoice listing for %s stopped with HTTP %d", scope, response.status_code)
            break
        raise_for_status(response, "Failed to list invoices", scope=scope)

        body = response.json()
        if not isinstance(body, dict):
            break
        values = body.get("value")
        if isinstance(values, list):
            invoices.extend(v for v in values if isinstance(v, dict))
        next_link = body.get("nextLink")
        url = next_link if isinstance(next_link, str) and next_link else None

    logger.debug("Listed %d invoice(s) in %s", len(invoices), scope)
    return invoices


def _candidate_fields(invoice: Dict[str, Any]) -> List[str]:
    properties = invoice.get("properties") or {}
    number = invoice.get("invoiceNumber") or properties.get("invoiceNumber")
    values = [invoice.get("name"), invoice.get("displayName"), number]
    return [str(v) for v in values if v]


def invoice_matches(invoice: Dict[str, Any], query: str) -> bool:
    """True if ``invoice`` answers to ``query``.

    Case-insensitive equality or substring on name, displayName and
    invoiceNumber, or equality of their digit-only forms.
    """
    normalized = query.strip().lower()
    if not normalized:
        return False
    digits = _NON_DIGITS.sub("", normalized)
    fields = _candidate_fields(invoice)

    lowered = [f.lower() for f in fields]
    if any(normalized in candidate for candidate in lowered):
        return True
    return bool(digits) and digits in [_NON_DIGITS.sub("", f) for f in fields]


async def find_invoice(
    client: BillingApiClient,
    scopes: Sequence[str],
    query: str,
) -> Optional[Tuple[str, Dict[str, Any]]]:
    """Scan every scope's invoice list; return (scope, invoice) of the first match."""
    results = await gather_scope_results(scopes, lambda scope: list_invoices(client, scope))
    for result in results:
        if not isinstance(result, ScopeSuccess):
            logger.warning("Invoice listing failed for %s: %s", result.scope, result.error)
            continue
        for invoice in result.value:
            if invoice_matches(invoice, query):
                return result.scope, invoice
    return None


async def recent_invoices(
    client: BillingApiClient,
    scopes: Sequence[str],
    limit: int = 10,
) -> List[InvoiceSummary]:
    """The newest ``limit`` invoices across scopes (limit clamped to 0..100)."""
    limit = max(0, min(MAX_RECENT, limit))
    if limit == 0:
        return []

    results = await gather_scope_results(scopes, lambda scope: list_invoices(client, scope))
    summaries: List[InvoiceSummary] = []
    for result in results:
        if isinstance(result, ScopeSuccess):
            summaries.extend(InvoiceSummary.from_invoice(inv) for inv in result.value)
        else:
            logger.warning("Invoice listing failed for %s: %s", result.scope, result.error)

    summaries.sort(key=lambda s: s.sort_key(), reverse=True)
    return summaries[:limit]
