"""Invoice lookup library modules.

This package contains the resolution engine (retry, operation polling,
document link extraction, multi-scope fan-out) and the billing API plumbing
around it.
"""

from invoice_lookup.lib.backoff import RetryOptions, delay_for
from invoice_lookup.lib.resilience import build_wait_strategy, retry_async
from invoice_lookup.lib.errors import (
    ApiRequestError,
    ConfigurationError,
    DocumentNotFoundError,
    DocumentSchemaError,
    InvalidPollLocationError,
    InvoiceLookupError,
    OperationFailedError,
    OperationNotFoundError,
    OperationTimeoutError,
)
from invoice_lookup.lib.auth import (
    AzureClientSecretTokenProvider,
    StaticTokenProvider,
    TokenProvider,
    build_auth_headers,
)
from invoice_lookup.lib.client import BillingApiClient, HttpPoolConfig
from invoice_lookup.lib.documents import (
    DocumentDownloadResult,
    DocumentSet,
    EXTRACTION_STRATEGIES,
    extract_document_links,
)
from invoice_lookup.lib.polling import (
    OperationHandle,
    OperationPoller,
    PollConfig,
    PollState,
    classify_poll_response,
)
from invoice_lookup.lib.fanout import (
    ScopeFailure,
    ScopeSuccess,
    gather_scope_results,
    resolve_across_scopes,
)
from invoice_lookup.lib.invoices import InvoiceDocumentResolver, resolve_invoice_document
from invoice_lookup.lib.transactions import (
    Transaction,
    fetch_scope_transactions,
    resolve_transactions,
    transactions_to_csv,
)
from invoice_lookup.lib.catalog import (
    InvoiceSummary,
    find_invoice,
    invoice_matches,
    list_invoices,
    recent_invoices,
)
from invoice_lookup.lib.accounts import BillingAccount, billing_account_names, fetch_billing_accounts
from invoice_lookup.lib.activity import ActivityType, Actor, record_activity
from invoice_lookup.lib.env import expand_options, load_env_file, split_csv
from invoice_lookup.lib.logging import get_lookup_logger, setup_logging
from invoice_lookup.lib.settings import AzureSettings, LookupSettings, load_settings

__all__ = [
    # Retry
    "RetryOptions",
    "delay_for",
    "build_wait_strategy",
    "retry_async",
    # Errors
    "ApiRequestError",
    "ConfigurationError",
    "DocumentNotFoundError",
    "DocumentSchemaError",
    "InvalidPollLocationError",
    "InvoiceLookupError",
    "OperationFailedError",
    "OperationNotFoundError",
    "OperationTimeoutError",
    # HTTP
    "AzureClientSecretTokenProvider",
    "StaticTokenProvider",
    "TokenProvider",
    "build_auth_headers",
    "BillingApiClient",
    "HttpPoolConfig",
    # Documents
    "DocumentDownloadResult",
    "DocumentSet",
    "EXTRACTION_STRATEGIES",
    "extract_document_links",
    # Polling
    "OperationHandle",
    "OperationPoller",
    "PollConfig",
    "PollState",
    "classify_poll_response",
    # Fan-out
    "ScopeFailure",
    "ScopeSuccess",
    "gather_scope_results",
    "resolve_across_scopes",
    # Resolution
    "InvoiceDocumentResolver",
    "resolve_invoice_document",
    "Transaction",
    "fetch_scope_transactions",
    "resolve_transactions",
    "transactions_to_csv",
    "InvoiceSummary",
    "find_invoice",
    "invoice_matches",
    "list_invoices",
    "recent_invoices",
    "BillingAccount",
    "billing_account_names",
    "fetch_billing_accounts",
    "ActivityType",
    "Actor",
    "record_activity",
    # Environment and settings
    "expand_options",
    "load_env_file",
    "split_csv",
    "get_lookup_logger",
    "setup_logging",
    "AzureSettings",
    "LookupSettings",
    "load_settings",
]
