"""Billing account metadata."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from invoice_lookup.lib.client import BillingApiClient
from invoice_lookup.lib.errors import DocumentSchemaError

logger = logging.getLogger(__name__)

__all__ = [
    "BillingAccount",
    "BillingAccountProperties",
    "billing_account_names",
    "fetch_billing_accounts",
]


class BillingAccountProperties(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    account_status: str = Field(alias="accountStatus")
    account_type: str = Field(alias="accountType")
    account_sub_type: str = Field(alias="accountSubType")
    agreement_type: str = Field(alias="agreementType")
    display_name: str = Field(alias="displayName")
    has_read_access: bool = Field(alias="hasReadAccess")
    primary_billing_tenant_id: str = Field(alias="primaryBillingTenantId")


class BillingAccount(BaseModel):
    """A billing account resource as returned by the management API."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    properties: BillingAccountProperties

    @property
    def display_name(self) -> str:
        return self.properties.display_name


async def fetch_billing_accounts(
    client: BillingApiClient,
    ids: Sequence[str],
) -> List[BillingAccount]:
    """Fetch every billing account in ``ids`` concurrently, in input order.

    Raises:
        ApiRequestError: Any account request was not 2xx
        DocumentSchemaError: Any account body failed validation
    """
    bodies = await asyncio.gather(
        *(client.get_json(client.account_url(scope), scope=scope) for scope in ids)
    )
    try:
        accounts = [BillingAccount.model_validate(body) for body in bodies]
    except ValidationError as exc:
        raise DocumentSchemaError(
            "Invalid billing accounts data", model="BillingAccount", cause=exc
        ) from exc
    logger.debug("Fetched %d billing account(s)", len(accounts))
    return accounts


async def billing_account_names(client: BillingApiClient, ids: Sequence[str]) -> List[str]:
    accounts = await fetch_billing_accounts(client, ids)
    return [account.display_name for account in accounts]
