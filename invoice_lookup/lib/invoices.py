"""Invoice document resolution.

For each configured billing scope:

1. GET the invoice and look for embedded PDF/CSV links.
2. If the set is incomplete, submit the download operation and poll it; the
   operation's ``url`` fills in the PDF link.

Every scope runs under bounded retry, all scopes run concurrently, and the
first scope (in configured order) that produced a PDF link wins.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence

from invoice_lookup.lib.activity import ActivityType, Actor, record_activity
from invoice_lookup.lib.backoff import RetryOptions
from invoice_lookup.lib.catalog import find_invoice
from invoice_lookup.lib.client import BillingApiClient
from invoice_lookup.lib.documents import DocumentSet, extract_document_links
from invoice_lookup.lib.errors import (
    ApiRequestError,
    ConfigurationError,
    DocumentNotFoundError,
    DocumentSchemaError,
    InvoiceLookupError,
)
from invoice_lookup.lib.fanout import resolve_across_scopes
from invoice_lookup.lib.logging import get_lookup_logger
from invoice_lookup.lib.polling import OperationPoller, PollConfig
from invoice_lookup.lib.resilience import retry_async

logger = logging.getLogger(__name__)

__all__ = [
    "InvoiceDocumentResolver",
    "documents_summary",
    "is_retryable",
    "resolve_invoice_document",
]

SleepFn = Callable[[float], Awaitable[Any]]


def is_retryable(exc: BaseException) -> bool:
    """Whether a per-scope failure is worth another attempt.

    Configuration and schema errors are permanent. A scope that answered
    "no such invoice" (404 on the invoice, or no document link) will answer
    the same way again.
    """
    if not isinstance(exc, Exception):
        return False
    if isinstance(exc, (ConfigurationError, DocumentSchemaError, DocumentNotFoundError)):
        return False
    if isinstance(exc, ApiRequestError) and exc.status_code == 404:
        return False
    return True


class InvoiceDocumentResolver:
    """Resolve an invoice's document links across billing scopes.

    Example:
        resolver = InvoiceDocumentResolver(client, ["1234:5678", "9999:0000"])
        documents = await resolver.resolve("G012345678")
        if documents:
            print(documents.pdf_url)
    """

    def __init__(
        self,
        client: BillingApiClient,
        scopes: Sequence[str],
        *,
        scope_attempts: int = 3,
        retry_options: Optional[RetryOptions] = None,
        poll_config: Optional[PollConfig] = None,
        fallback_to_catalog: bool = False,
        actor: Optional[Actor] = None,
        sleep: Optional[SleepFn] = None,
    ) -> None:
        if scope_attempts < 1:
            raise ConfigurationError(
                "scope_attempts must be at least 1", field="scope_attempts", value=scope_attempts
            )
        self.client = client
        self.scopes = list(scopes)
        self.scope_attempts = scope_attempts
        self.retry_options = retry_options or RetryOptions()
        self.poll_config = poll_config or PollConfig()
        self.fallback_to_catalog = fallback_to_catalog
        self.actor = actor
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        client: BillingApiClient,
        azure: Any,
        lookup: Any,
        **kwargs: Any,
    ) -> "InvoiceDocumentResolver":
        return cls(
            client,
            azure.billing_account_ids(),
            scope_attempts=lookup.scope_attempts,
            retry_options=lookup.retry_options(),
            poll_config=PollConfig.from_settings(lookup),
            fallback_to_catalog=lookup.fallback_to_catalog,
            **kwargs,
        )

    async def complete_documents(
        self,
        scope: str,
        invoice_name: str,
        found: DocumentSet,
    ) -> DocumentSet:
        """Fill an incomplete set through the download operation."""
        log = get_lookup_logger(__name__, scope=scope, invoice=invoice_name)
        log.info("Embedded links incomplete, submitting download operation")

        poller = OperationPoller(self.client, self.poll_config, sleep=self._sleep)
        result = await poller.run(
            lambda: self.client.post(self.client.download_url(scope, invoice_name))
        )
        documents = found.merge(DocumentSet(pdf_url=result.url, expires_at=result.expiry_time))

        if not documents.pdf_url:
            raise DocumentNotFoundError(
                "No invoice PDF link found", invoice_name=invoice_name, scope=scope
            )
        return documents

    async def fetch_scope_document(self, scope: str, invoice_name: str) -> DocumentSet:
        """One attempt at resolving the documents within a single scope.

        Raises:
            ApiRequestError: The invoice request was not 2xx (404 included)
            DocumentNotFoundError: No PDF link could be found
            DocumentSchemaError, OperationFailedError, OperationTimeoutError:
                From the download operation
        """
        body = await self.client.get_json(
            self.client.invoice_url(scope, invoice_name), scope=scope
        )
        found = extract_document_links(body)
        if found.is_complete:
            logger.debug("Invoice %s has embedded links in %s", invoice_name, scope)
            return found
        return await self.complete_documents(scope, invoice_name, found)

    async def _fetch_with_retry(self, scope: str, invoice_name: str) -> DocumentSet:
        return await retry_async(
            lambda: self.fetch_scope_document(scope, invoice_name),
            self.scope_attempts,
            self.retry_options,
            retry_if=is_retryable,
            operation_name=f"invoice {invoice_name} [{scope}]",
            sleep=self._sleep,
        )

    async def _resolve_from_catalog(self, query: str) -> Optional[DocumentSet]:
        match = await find_invoice(self.client, self.scopes, query)
        if match is None:
            return None
        scope, invoice = match
        invoice_name = str(invoice.get("name") or (invoice.get("properties") or {}).get("name") or "")
        logger.info("Catalog matched %r to invoice %s in %s", query, invoice_name, scope)

        found = extract_document_links(invoice)
        if found.is_complete or not invoice_name:
            return None if found.is_empty else found
        try:
            return await self.complete_documents(scope, invoice_name, found)
        except InvoiceLookupError as exc:
            logger.warning("Download for catalog match %s failed: %s", invoice_name, exc)
            return None if not found.pdf_url else found

    async def resolve(self, invoice_name: str) -> Optional[DocumentSet]:
        """Documents of ``invoice_name`` from the first scope that has them, else None."""
        log = get_lookup_logger(__name__, invoice=invoice_name)
        documents = await resolve_across_scopes(
            self.scopes, lambda scope: self._fetch_with_retry(scope, invoice_name)
        )

        if documents is None and self.fallback_to_catalog:
            log.info("Direct lookup found nothing, scanning invoice catalog")
            documents = await self._resolve_from_catalog(invoice_name)

        log.metric("scopes_queried", len(self.scopes), unit="scopes")
        if documents is None:
            log.info("Invoice not found in any scope")
            return None

        log.info("Resolved invoice documents")
        record_activity(
            ActivityType.SEARCH_INVOICE,
            self.actor,
            {"invoiceName": invoice_name, "documents": documents.to_dict()},
        )
        return documents


async def resolve_invoice_document(
    invoice_name: str,
    *,
    client: BillingApiClient,
    scopes: Sequence[str],
    **kwargs: Any,
) -> Optional[DocumentSet]:
    """Shortcut for ``InvoiceDocumentResolver(client, scopes, **kwargs).resolve(name)``."""
    resolver = InvoiceDocumentResolver(client, scopes, **kwargs)
    return await resolver.resolve(invoice_name)


def documents_summary(documents: Optional[DocumentSet]) -> Dict[str, Any]:
    """JSON-ready result for CLI output."""
    if documents is None:
        return {"found": False}
    return {"found": True, **documents.to_dict()}
