"""Invoice transactions and their CSV export.

Transactions are fetched per scope (following ``nextLink`` pages), resolved
across scopes with the same first-success rule as invoice documents, and
rendered as the CSV layout of the Azure portal export:

    DATE,SERVICE PERIOD,TRANSACTION TYPE,PRODUCT FAMILY,PRODUCT TYPE,
    PRODUCT SKU,INVOICE SECTION,CHARGES/CREDITS CURRENCY,CHARGES/CREDITS
"""

from __future__ import annotations

import csv
import io
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from invoice_lookup.lib.backoff import RetryOptions
from invoice_lookup.lib.client import BillingApiClient
from invoice_lookup.lib.errors import ConfigurationError, DocumentSchemaError
from invoice_lookup.lib.fanout import resolve_across_scopes
from invoice_lookup.lib.resilience import retry_async

logger = logging.getLogger(__name__)

__all__ = [
    "CSV_HEADER",
    "Transaction",
    "TransactionProperties",
    "TransactionsPage",
    "fetch_scope_transactions",
    "format_us_date",
    "humanize_transaction_type",
    "resolve_transactions",
    "transactions_to_csv",
]

CSV_HEADER = [
    "DATE",
    "SERVICE PERIOD",
    "TRANSACTION TYPE",
    "PRODUCT FAMILY",
    "PRODUCT TYPE",
    "PRODUCT SKU",
    "INVOICE SECTION",
    "CHARGES/CREDITS CURRENCY",
    "CHARGES/CREDITS",
]

_TRANSACTION_TYPES = {
    "cycleCharge": "Monthly payment",
    "purchase": "Purchase",
    "refund": "Refund",
}

# Cap on followed pages; the API never returns this many for one invoice
MAX_PAGES = 100


class Amount(BaseModel):
    currency: str
    value: float


class TransactionProperties(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    date: datetime
    service_period_start_date: datetime = Field(alias="servicePeriodStartDate")
    service_period_end_date: datetime = Field(alias="servicePeriodEndDate")
    transaction_type: str = Field(alias="transactionType")
    product_family: str = Field(alias="productFamily")
    product_type: str = Field(alias="productType")
    # The human-friendly SKU
    product_description: str = Field(alias="productDescription")
    invoice_section_display_name: str = Field(alias="invoiceSectionDisplayName")
    sub_total: Amount = Field(alias="subTotal")


class Transaction(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    type: str
    properties: TransactionProperties


class TransactionsPage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    total_count: Optional[int] = Field(default=None, alias="totalCount")
    value: List[Transaction] = Field(default_factory=list)
    next_link: Optional[str] = Field(default=None, alias="nextLink")


async def fetch_scope_transactions(
    client: BillingApiClient,
    scope: str,
    invoice_name: str,
) -> List[Transaction]:
    """Fetch every transaction of ``invoice_name`` in one scope.

    Raises:
        ApiRequestError: A page request was not 2xx
        DocumentSchemaError: A page failed validation
    """
    url: Optional[str] = client.transactions_url(scope, invoice_name)
    transactions: List[Transaction] = []
    pages = 0

    while url and pages < MAX_PAGES:
        body = await client.get_json(url, scope=scope)
        try:
            page = TransactionsPage.model_validate(body)
        except ValidationError as exc:
            raise DocumentSchemaError(
                "Invalid transaction response data",
                model="TransactionsPage",
                cause=exc,
                scope=scope,
            ) from exc
        transactions.extend(page.value)
        pages += 1
        url = page.next_link

    if url:
        logger.warning("Stopped following transaction pages for %s after %d pages", invoice_name, pages)

    logger.debug("Fetched %d transaction(s) for %s from %s", len(transactions), invoice_name, scope)
    return transactions


def _retry_transactions(exc: BaseException) -> bool:
    return isinstance(exc, Exception) and not isinstance(
        exc, (ConfigurationError, DocumentSchemaError)
    )


async def resolve_transactions(
    client: BillingApiClient,
    scopes: Sequence[str],
    invoice_name: str,
    *,
    scope_attempts: int = 1,
    retry_options: Optional[RetryOptions] = None,
    sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
) -> Optional[List[Transaction]]:
    """Transactions from the first scope that has the invoice, else None."""

    async def per_scope(scope: str) -> List[Transaction]:
        return await retry_async(
            lambda: fetch_scope_transactions(client, scope, invoice_name),
            scope_attempts,
            retry_options,
            retry_if=_retry_transactions,
            operation_name=f"transactions {invoice_name} [{scope}]",
            sleep=sleep,
        )

    return await resolve_across_scopes(scopes, per_scope)


def format_us_date(value: datetime) -> str:
    """``M/D/YYYY`` in UTC, without zero padding."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return f"{value.month}/{value.day}/{value.year}"


def humanize_transaction_type(value: str) -> str:
    return _TRANSACTION_TYPES.get(value, value)


def _format_amount(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def _csv_row(transaction: Transaction) -> List[str]:
    p = transaction.properties
    return [
        format_us_date(p.date),
        f"{format_us_date(p.service_period_start_date)} - {format_us_date(p.service_period_end_date)}",
        humanize_transaction_type(p.transaction_type),
        p.product_family,
        p.product_type,
        p.product_description,
        p.invoice_section_display_name,
        p.sub_total.currency,
        _format_amount(p.sub_total.value),
    ]


def transactions_to_csv(transactions: Iterable[Transaction]) -> str:
    """Render transactions as CSV; the header is bare, every data field quoted."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for transaction in transactions:
        writer.writerow(_csv_row(transaction))
    lines = [",".join(CSV_HEADER)]
    body = buffer.getvalue()
    if body:
        lines.append(body.rstrip("\n"))
    return "\n".join(lines)
