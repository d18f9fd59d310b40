"""Azure billing invoice lookup.

Resolves invoice document links (PDF, transactions CSV) across one or more
billing account scopes, driving the billing API's asynchronous download
operations to completion.

Usage:
    python -m invoice_lookup document G012345678
    python -m invoice_lookup transactions G012345678 --output g0123.csv
    python -m invoice_lookup recent --limit 5
"""

__version__ = "0.1.0"

from invoice_lookup.lib.documents import DocumentSet  # noqa: E402
from invoice_lookup.lib.invoices import (  # noqa: E402
    InvoiceDocumentResolver,
    resolve_invoice_document,
)
from invoice_lookup.lib.resilience import retry_async  # noqa: E402

__all__ = [
    "__version__",
    "DocumentSet",
    "InvoiceDocumentResolver",
    "resolve_invoice_document",
    "retry_async",
]
