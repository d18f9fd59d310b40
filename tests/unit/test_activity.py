"""Tests for activity records."""

from __future__ import annotations

import logging
from unittest.mock import patch

from invoice_lookup.lib.activity import ActivityType, Actor, record_activity


class TestRecordActivity:
    def test_emits_structured_record(self, caplog) -> None:
        with caplog.at_level(logging.INFO, logger="invoice_lookup.activity"):
            payload = record_activity(
                ActivityType.SEARCH_INVOICE,
                Actor(email="ops@example.com"),
                {"invoiceName": "G1"},
            )

        assert payload["activity"] == "search-invoice"
        assert payload["actor"]["email"] == "ops@example.com"
        assert payload["data"] == {"invoiceName": "G1"}
        assert payload["date"].endswith("Z")
        assert caplog.records[-1].activity == payload

    def test_accepts_plain_string(self) -> None:
        assert record_activity("search-invoice")["activity"] == "search-invoice"

    def test_failures_are_logged_not_raised(self, caplog) -> None:
        with patch("invoice_lookup.lib.activity.activity_logger") as mock_logger:
            mock_logger.info.side_effect = RuntimeError("handler broke")
            with caplog.at_level(logging.ERROR, logger="invoice_lookup.lib.activity"):
                assert record_activity(ActivityType.SEARCH_INVOICE) is None
        assert any("Failed to record activity" in r.getMessage() for r in caplog.records)

    def test_unknown_activity(self) -> None:
        assert record_activity("login") is None
