"""Tests for invoice transactions and CSV export."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from invoice_lookup.lib.client import BillingApiClient
from invoice_lookup.lib.errors import ApiRequestError, ConfigurationError, DocumentSchemaError
from invoice_lookup.lib.transactions import (
    CSV_HEADER,
    Transaction,
    fetch_scope_transactions,
    format_us_date,
    humanize_transaction_type,
    resolve_transactions,
    transactions_to_csv,
)

BASE = "https://management.azure.com/providers/Microsoft.Billing/billingAccounts"
INVOICE = "G012345678"


class EmptyTokenProvider:
    async def get_token(self) -> str:
        return ""


def transactions_url(scope: str) -> str:
    return f"{BASE}/{scope}/invoices/{INVOICE}/transactions"


def transaction(name: str = "t1", **overrides) -> dict:
    properties = {
        "date": "2025-01-05T00:00:00Z",
        "servicePeriodStartDate": "2024-12-01T00:00:00Z",
        "servicePeriodEndDate": "2024-12-31T00:00:00Z",
        "transactionType": "cycleCharge",
        "productFamily": "Azure",
        "productType": "Azure plan",
        "productDescription": "Azure plan consumption",
        "invoiceSectionDisplayName": "Engineering",
        "subTotal": {"currency": "USD", "value": 120.5},
    }
    properties.update(overrides)
    return {
        "id": f"/transactions/{name}",
        "name": name,
        "type": "Microsoft.Billing/billingAccounts/transactions",
        "properties": properties,
    }


class TestFetchScopeTransactions:
    """Tests for fetch_scope_transactions."""

    def test_single_page(self, make_client, scripted) -> None:
        scripted.add(
            "GET",
            transactions_url("A"),
            httpx.Response(200, json={"totalCount": 1, "value": [transaction()]}),
        )
        rows = asyncio.run(fetch_scope_transactions(make_client(scripted), "A", INVOICE))
        assert len(rows) == 1
        assert rows[0].properties.sub_total.value == 120.5

    def test_follows_next_link(self, make_client, scripted) -> None:
        next_link = f"{BASE}/A/invoices/{INVOICE}/transactionsPage2?api-version=2024-04-01&skiptoken=x"
        scripted.add(
            "GET",
            transactions_url("A"),
            httpx.Response(200, json={"value": [transaction("t1")], "nextLink": next_link}),
        )
        scripted.add(
            "GET",
            next_link,
            httpx.Response(200, json={"value": [transaction("t2")]}),
        )
        rows = asyncio.run(fetch_scope_transactions(make_client(scripted), "A", INVOICE))

        assert [r.name for r in rows] == ["t1", "t2"]
        # nextLink already carries api-version; it is not added twice
        page_two = scripted.requests[1]
        assert str(page_two.url).count("api-version") == 1

    def test_non_success_raises(self, make_client, scripted) -> None:
        scripted.add("GET", transactions_url("A"), httpx.Response(403, text="forbidden"))
        with pytest.raises(ApiRequestError) as exc_info:
            asyncio.run(fetch_scope_transactions(make_client(scripted), "A", INVOICE))
        assert exc_info.value.status_code == 403

    def test_invalid_page_raises(self, make_client, scripted) -> None:
        scripted.add(
            "GET",
            transactions_url("A"),
            httpx.Response(200, json={"value": [{"id": "x"}]}),
        )
        with pytest.raises(DocumentSchemaError):
            asyncio.run(fetch_scope_transactions(make_client(scripted), "A", INVOICE))


class TestResolveTransactions:
    def test_first_scope_with_invoice(self, make_client, scripted) -> None:
        scripted.add(
            "GET",
            transactions_url("B"),
            httpx.Response(200, json={"value": [transaction("from-b")]}),
        )
        rows = asyncio.run(resolve_transactions(make_client(scripted), ["A", "B"], INVOICE))
        assert [r.name for r in rows] == ["from-b"]

    def test_none_when_missing_everywhere(self, make_client, scripted) -> None:
        assert asyncio.run(resolve_transactions(make_client(scripted), ["A"], INVOICE)) is None

    def test_transient_failure_is_retried(self, make_client, scripted, recording_sleep) -> None:
        scripted.add(
            "GET",
            transactions_url("A"),
            httpx.Response(503, text="busy"),
            httpx.Response(200, json={"value": [transaction("after-retry")]}),
        )
        rows = asyncio.run(
            resolve_transactions(
                make_client(scripted), ["A"], INVOICE, scope_attempts=2, sleep=recording_sleep
            )
        )
        assert [r.name for r in rows] == ["after-retry"]
        assert recording_sleep.delays == [1.0]

    def test_configuration_error_not_retried(self, scripted, recording_sleep) -> None:
        client = BillingApiClient(EmptyTokenProvider(), transport=httpx.MockTransport(scripted))
        with pytest.raises(ConfigurationError):
            asyncio.run(
                resolve_transactions(
                    client, ["A", "B"], INVOICE, scope_attempts=3, sleep=recording_sleep
                )
            )
        assert recording_sleep.delays == []


class TestTransactionsToCsv:
    """Tests for transactions_to_csv."""

    def test_header_only(self) -> None:
        assert transactions_to_csv([]) == ",".join(CSV_HEADER)

    def test_row_layout(self) -> None:
        row = Transaction.model_validate(transaction())
        lines = transactions_to_csv([row]).split("\n")

        assert lines[0] == (
            "DATE,SERVICE PERIOD,TRANSACTION TYPE,PRODUCT FAMILY,PRODUCT TYPE,"
            "PRODUCT SKU,INVOICE SECTION,CHARGES/CREDITS CURRENCY,CHARGES/CREDITS"
        )
        assert lines[1] == (
            '"1/5/2025","12/1/2024 - 12/31/2024","Monthly payment","Azure",'
            '"Azure plan","Azure plan consumption","Engineering","USD","120.5"'
        )

    def test_quotes_are_escaped(self) -> None:
        row = Transaction.model_validate(
            transaction(productDescription='Plan "Pro", annual', subTotal={"currency": "EUR", "value": 10})
        )
        line = transactions_to_csv([row]).split("\n")[1]
        assert '"Plan ""Pro"", annual"' in line
        assert line.endswith('"EUR","10"')

    def test_rows_in_order(self) -> None:
        rows = [Transaction.model_validate(transaction(n)) for n in ("a", "b", "c")]
        assert len(transactions_to_csv(rows).split("\n")) == 4


class TestFormatting:
    def test_format_us_date_uses_utc(self) -> None:
        local = datetime(2025, 1, 1, 2, 0, tzinfo=timezone(timedelta(hours=7)))
        assert format_us_date(local) == "12/31/2024"

    def test_format_us_date_no_padding(self) -> None:
        assert format_us_date(datetime(2025, 3, 9, tzinfo=timezone.utc)) == "3/9/2025"

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("cycleCharge", "Monthly payment"),
            ("purchase", "Purchase"),
            ("refund", "Refund"),
            ("usageCharge", "usageCharge"),
        ],
    )
    def test_humanize_transaction_type(self, raw: str, expected: str) -> None:
        assert humanize_transaction_type(raw) == expected
