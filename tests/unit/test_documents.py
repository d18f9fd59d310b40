"""Tests for invoice document link extraction."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from invoice_lookup.lib.documents import (
    DocumentDownloadResult,
    DocumentSet,
    EXTRACTION_STRATEGIES,
    classify_document_kind,
    extract_document_links,
    find_document_entries,
)


class TestExtractDocumentLinks:
    """Tests for extract_document_links."""

    def test_first_match_per_kind_wins(self) -> None:
        body = {
            "properties": {
                "documents": [
                    {"kind": "InvoicePdf", "url": "x"},
                    {"kind": "csv", "url": "y"},
                    {"kind": "csv", "url": "z"},
                ]
            }
        }
        links = extract_document_links(body)
        assert links.pdf_url == "x"
        assert links.csv_url == "y"
        assert links.is_complete

    def test_strategy_priority(self) -> None:
        """properties.documents is used even when top-level documents exist."""
        body = {
            "properties": {"documents": [{"kind": "InvoicePdf", "url": "https://a/pdf"}]},
            "documents": [
                {"kind": "InvoicePdf", "url": "https://b/pdf"},
                {"kind": "TransactionCsv", "url": "https://b/csv"},
            ],
        }
        links = extract_document_links(body)
        assert links.pdf_url == "https://a/pdf"
        assert links.csv_url is None

    @pytest.mark.parametrize(
        "body",
        [
            {"documents": [{"kind": "pdf", "url": "p"}, {"kind": "csv", "url": "c"}]},
            {"properties": {"additionalProperties": [{"type": "pdf", "url": "p"}, {"type": "csv", "url": "c"}]}},
            {"value": [{"documentType": "PDF", "url": "p"}, {"documentType": "CSV", "url": "c"}]},
            {"json": {"documents": [{"kind": "pdf", "url": "p"}, {"kind": "csv", "url": "c"}]}},
        ],
    )
    def test_alternate_locations(self, body) -> None:
        assert extract_document_links(body) == DocumentSet(pdf_url="p", csv_url="c")

    def test_url_under_properties(self) -> None:
        body = {"documents": [{"kind": "InvoicePdf", "properties": {"url": "https://x/pdf"}}]}
        assert extract_document_links(body).pdf_url == "https://x/pdf"

    def test_entries_without_url_skipped(self) -> None:
        body = {
            "documents": [
                {"kind": "InvoicePdf"},
                {"kind": "InvoicePdf", "url": ""},
                {"kind": "InvoicePdf", "url": "https://late/pdf"},
            ]
        }
        assert extract_document_links(body).pdf_url == "https://late/pdf"

    def test_unknown_kinds_ignored(self) -> None:
        body = {"documents": [{"kind": "CreditNote", "url": "https://x"}, "junk", None]}
        assert extract_document_links(body).is_empty

    def test_download_url_fills_missing_pdf(self) -> None:
        body = {
            "properties": {
                "documents": [{"kind": "csv", "url": "https://x/csv"}],
                "downloadUrl": "https://x/download",
            }
        }
        links = extract_document_links(body)
        assert links.pdf_url == "https://x/download"
        assert links.csv_url == "https://x/csv"

    def test_top_level_download_url(self) -> None:
        assert extract_document_links({"downloadUrl": "https://d"}).pdf_url == "https://d"

    def test_download_url_does_not_replace_pdf(self) -> None:
        body = {
            "documents": [{"kind": "pdf", "url": "https://x/pdf"}],
            "downloadUrl": "https://x/download",
        }
        assert extract_document_links(body).pdf_url == "https://x/pdf"

    @pytest.mark.parametrize("body", [None, [], "text", {}, {"properties": None}])
    def test_unusable_bodies(self, body) -> None:
        assert extract_document_links(body) == DocumentSet()


class TestFindDocumentEntries:
    def test_first_list_wins_even_if_empty(self) -> None:
        body = {"properties": {"documents": []}, "documents": [{"kind": "pdf", "url": "x"}]}
        assert find_document_entries(body) == []

    def test_non_list_is_skipped(self) -> None:
        body = {"properties": {"documents": "n/a"}, "documents": [{"kind": "pdf"}]}
        assert find_document_entries(body) == [{"kind": "pdf"}]

    def test_strategy_order(self) -> None:
        names = [s.name for s in EXTRACTION_STRATEGIES]
        assert names == [
            "properties.documents",
            "documents",
            "properties.additionalProperties",
            "value",
        ]


class TestClassifyDocumentKind:
    @pytest.mark.parametrize(
        "entry,expected",
        [
            ({"kind": "InvoicePdf"}, "pdf"),
            ({"kind": "InvoiceTransactionCsv"}, "csv"),
            ({"type": "pdf"}, "pdf"),
            ({"kind": "", "documentType": "CSV"}, "csv"),
            ({"kind": "Other"}, None),
            ({}, None),
        ],
    )
    def test_kinds(self, entry, expected) -> None:
        assert classify_document_kind(entry) == expected


class TestDocumentSet:
    def test_merge_keeps_existing_links(self) -> None:
        found = DocumentSet(pdf_url="a", csv_url=None)
        merged = found.merge(DocumentSet(pdf_url="b", csv_url="c"))
        assert merged == DocumentSet(pdf_url="a", csv_url="c")
        assert found.csv_url is None

    def test_to_dict(self) -> None:
        expires = datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc)
        data = DocumentSet(pdf_url="a", expires_at=expires).to_dict()
        assert data == {
            "pdf_url": "a",
            "csv_url": None,
            "expires_at": "2025-01-15T10:30:00+00:00",
        }


class TestDocumentDownloadResult:
    def test_parses_expiry(self) -> None:
        result = DocumentDownloadResult.model_validate(
            {"url": "https://x/pdf", "expiryTime": "2025-01-15T10:30:00Z"}
        )
        assert result.expiry_time == datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_expiry_optional(self) -> None:
        assert DocumentDownloadResult.model_validate({"url": "https://x"}).expiry_time is None

    @pytest.mark.parametrize("body", [{}, {"url": "ftp://x"}, {"url": 5}])
    def test_invalid(self, body) -> None:
        with pytest.raises(ValidationError):
            DocumentDownloadResult.model_validate(body)
