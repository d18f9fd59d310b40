"""Invoice document link extraction.

Billing API responses are not uniformly shaped across scopes and API
versions: document entries may live under ``properties.documents``, a
top-level ``documents`` list, ``properties.additionalProperties`` or a
``value`` list. The locations are tried in a fixed priority order
(:data:`EXTRACTION_STRATEGIES`) and the first one holding a list is used.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from invoice_lookup.lib.client import is_http_url

logger = logging.getLogger(__name__)

__all__ = [
    "DocumentDownloadResult",
    "DocumentSet",
    "ExtractionStrategy",
    "EXTRACTION_STRATEGIES",
    "classify_document_kind",
    "extract_document_links",
    "find_document_entries",
]


class DocumentDownloadResult(BaseModel):
    """Body of a finished download operation: ``{url, expiryTime?}``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    url: str
    expiry_time: Optional[datetime] = Field(default=None, alias="expiryTime")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not is_http_url(v):
            raise ValueError("url must be an absolute http(s) URL")
        return v


@dataclass(frozen=True)
class DocumentSet:
    """Links to an invoice's downloadable documents.

    Complete only when both the PDF and the CSV link are known.
    """

    pdf_url: Optional[str] = None
    csv_url: Optional[str] = None
    expires_at: Optional[datetime] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.pdf_url and self.csv_url)

    @property
    def is_empty(self) -> bool:
        return not (self.pdf_url or self.csv_url)

    def merge(self, other: "DocumentSet") -> "DocumentSet":
        """Fill missing links from ``other``; links already present win."""
        return replace(
            self,
            pdf_url=self.pdf_url or other.pdf_url,
            csv_url=self.csv_url or other.csv_url,
            expires_at=self.expires_at or other.expires_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pdf_url": self.pdf_url,
            "csv_url": self.csv_url,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }


@dataclass(frozen=True)
class ExtractionStrategy:
    """A named location in a response body that may hold document entries."""

    name: str
    path: Tuple[str, ...]

    def locate(self, body: Dict[str, Any]) -> Optional[List[Any]]:
        node: Any = body
        for key in self.path:
            if not isinstance(node, dict):
                return None
            node = node.get(key)
        return node if isinstance(node, list) else None


EXTRACTION_STRATEGIES: Tuple[ExtractionStrategy, ...] = (
    ExtractionStrategy("properties.documents", ("properties", "documents")),
    ExtractionStrategy("documents", ("documents",)),
    ExtractionStrategy("properties.additionalProperties", ("properties", "additionalProperties")),
    ExtractionStrategy("value", ("value",)),
)

_KIND_FIELDS = ("kind", "type", "documentType")


def _unwrap(body: Any) -> Any:
    # Some intermediaries wrap the real body under a "json" key
    if isinstance(body, dict) and isinstance(body.get("json"), dict):
        return body["json"]
    return body


def find_document_entries(
    body: Any,
    strategies: Tuple[ExtractionStrategy, ...] = EXTRACTION_STRATEGIES,
) -> List[Any]:
    """Return the document entries of the first matching strategy."""
    body = _unwrap(body)
    if not isinstance(body, dict):
        return []
    for strategy in strategies:
        entries = strategy.locate(body)
        if entries is not None:
            logger.debug("Document entries found under '%s'", strategy.name)
            return entries
    return []


def classify_document_kind(entry: Dict[str, Any]) -> Optional[str]:
    """Return ``"pdf"``, ``"csv"`` or None for a document entry."""
    kind = ""
    for key in _KIND_FIELDS:
        if entry.get(key):
            kind = str(entry[key]).lower()
            break
    if "pdf" in kind:
        return "pdf"
    if "csv" in kind:
        return "csv"
    return None


def _entry_url(entry: Dict[str, Any]) -> Optional[str]:
    url = entry.get("url")
    if not url and isinstance(entry.get("properties"), dict):
        url = entry["properties"].get("url")
    return url if isinstance(url, str) and url else None


def _fallback_download_url(body: Dict[str, Any]) -> Optional[str]:
    properties = body.get("properties")
    if isinstance(properties, dict) and isinstance(properties.get("downloadUrl"), str):
        return properties["downloadUrl"]
    if isinstance(body.get("downloadUrl"), str):
        return body["downloadUrl"]
    return None


def extract_document_links(body: Any) -> DocumentSet:
    """Locate embedded PDF/CSV links in a loosely-typed response body.

    The first URL found for each kind wins; later duplicates are ignored.
    When the result is incomplete, a ``downloadUrl`` field fills in a missing
    PDF link. Whatever was found is returned; deciding whether to fall back
    to the download operation is up to the caller.

    Example:
        >>> extract_document_links({"documents": [
        ...     {"kind": "InvoicePdf", "url": "https://x"},
        ...     {"kind": "csv", "url": "https://y"},
        ... ]})
        DocumentSet(pdf_url='https://x', csv_url='https://y', expires_at=None)
    """
    links: Dict[str, str] = {}
    for entry in find_document_entries(body):
        if not isinstance(entry, dict):
            continue
        url = _entry_url(entry)
        if not url:
            continue
        kind = classify_document_kind(entry)
        if kind and kind not in links:
            links[kind] = url

    found = DocumentSet(pdf_url=links.get("pdf"), csv_url=links.get("csv"))

    unwrapped = _unwrap(body)
    if not found.is_complete and not found.pdf_url and isinstance(unwrapped, dict):
        download_url = _fallback_download_url(unwrapped)
        if download_url:
            found = replace(found, pdf_url=download_url)

    return found
