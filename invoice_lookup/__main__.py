"""CLI entry point for invoice lookups.

Usage:
    python -m invoice_lookup document G012345678
    python -m invoice_lookup transactions G012345678 --output g0123.csv
    python -m invoice_lookup recent --limit 5
    python -m invoice_lookup accounts

Exit codes:
    0  success
    1  nothing found, or the lookup failed
    2  configuration error
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

import httpx

from invoice_lookup.lib.accounts import fetch_billing_accounts
from invoice_lookup.lib.auth import AzureClientSecretTokenProvider
from invoice_lookup.lib.catalog import recent_invoices
from invoice_lookup.lib.client import BillingApiClient
from invoice_lookup.lib.env import load_env_file
from invoice_lookup.lib.errors import ConfigurationError, InvoiceLookupError
from invoice_lookup.lib.invoices import InvoiceDocumentResolver, documents_summary
from invoice_lookup.lib.logging import setup_logging
from invoice_lookup.lib.settings import AzureSettings, LookupSettings, load_settings
from invoice_lookup.lib.transactions import resolve_transactions, transactions_to_csv

logger = logging.getLogger("invoice_lookup")

EXIT_OK = 0
EXIT_NOT_FOUND = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="invoice-lookup",
        description="Look up Azure billing invoice documents across billing accounts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Resolve PDF/CSV links for an invoice
    python -m invoice_lookup document G012345678

    # Export the invoice's transactions as CSV
    python -m invoice_lookup transactions G012345678 --output g0123.csv

    # Show the newest invoices across all billing accounts
    python -m invoice_lookup recent --limit 5
        """,
    )
    parser.add_argument("--config", help="YAML file overriding environment settings")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs in JSON format (for log aggregation systems)",
    )
    parser.add_argument(
        "--log-file",
        help="Write logs to a file in addition to console",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    document = commands.add_parser("document", help="Resolve invoice document links")
    document.add_argument("invoice", help="Invoice name, e.g. G012345678")

    transactions = commands.add_parser("transactions", help="Export invoice transactions as CSV")
    transactions.add_argument("invoice", help="Invoice name, e.g. G012345678")
    transactions.add_argument("--output", "-o", help="Write CSV to this file instead of stdout")

    recent = commands.add_parser("recent", help="List the newest invoices")
    recent.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Number of invoices to show (default: 10, max: 100)",
    )

    commands.add_parser("accounts", help="Show configured billing accounts")
    return parser


def create_client(azure: AzureSettings, lookup: LookupSettings) -> BillingApiClient:
    """Build an authenticated billing client from settings."""
    tenant_id, client_id, client_secret = azure.require_credentials()
    provider = AzureClientSecretTokenProvider(tenant_id, client_id, client_secret)
    return BillingApiClient(
        provider,
        base_url=azure.management_url,
        api_version=azure.api_version,
        timeout=lookup.request_timeout,
    )


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2))


async def run_command(
    args: argparse.Namespace,
    client: BillingApiClient,
    azure: AzureSettings,
    lookup: LookupSettings,
) -> int:
    scopes = azure.billing_account_ids()

    if args.command == "document":
        resolver = InvoiceDocumentResolver.from_settings(client, azure, lookup)
        documents = await resolver.resolve(args.invoice)
        _print_json({"invoice": args.invoice, **documents_summary(documents)})
        return EXIT_OK if documents else EXIT_NOT_FOUND

    if args.command == "transactions":
        rows = await resolve_transactions(
            client,
            scopes,
            args.invoice,
            scope_attempts=lookup.scope_attempts,
            retry_options=lookup.retry_options(),
        )
        if rows is None:
            print(f"No transactions found for invoice {args.invoice}", file=sys.stderr)
            return EXIT_NOT_FOUND
        csv_text = transactions_to_csv(rows)
        if args.output:
            Path(args.output).write_text(csv_text + "\n", encoding="utf-8")
            logger.info("Wrote %d transaction(s) to %s", len(rows), args.output)
        else:
            print(csv_text)
        return EXIT_OK

    if args.command == "recent":
        summaries = await recent_invoices(client, scopes, limit=args.limit)
        _print_json([s.to_dict() for s in summaries])
        return EXIT_OK if summaries else EXIT_NOT_FOUND

    if args.command == "accounts":
        accounts = await fetch_billing_accounts(client, scopes)
        _print_json([a.model_dump(by_alias=True) for a in accounts])
        return EXIT_OK

    raise ConfigurationError(f"Unknown command: {args.command}", field="command")


async def _run(args: argparse.Namespace, azure: AzureSettings, lookup: LookupSettings) -> int:
    async with create_client(azure, lookup) as client:
        return await run_command(args, client, azure, lookup)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    load_env_file()

    try:
        azure, lookup = load_settings(args.config)
    except ConfigurationError as e:
        setup_logging(verbose=args.verbose, json_format=args.json_logs, log_file=args.log_file)
        logger.error("%s", e)
        return EXIT_CONFIG

    setup_logging(
        verbose=args.verbose,
        json_format=args.json_logs or lookup.log_format == "json",
        log_file=args.log_file or lookup.log_file,
        level=lookup.log_level,
    )

    try:
        return asyncio.run(_run(args, azure, lookup))
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 130
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG
    except (InvoiceLookupError, httpx.HTTPError) as e:
        logger.error("Lookup failed: %s", e)
        return EXIT_NOT_FOUND


if __name__ == "__main__":
    sys.exit(main())
