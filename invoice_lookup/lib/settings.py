"""Configuration for invoice lookups.

Settings come from environment variables (and a ``.env`` file) through
pydantic-settings, optionally overlaid with a YAML file:

    azure:
      tenant_id: ${AZURE_TENANT_ID}
      billing_account_id: "1234:5678,9999:0000"
    lookup:
      scope_attempts: 3
      poll_max_attempts: 18
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from invoice_lookup.lib.backoff import RetryOptions
from invoice_lookup.lib.env import expand_options, split_csv
from invoice_lookup.lib.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = [
    "AzureSettings",
    "LookupSettings",
    "load_settings",
]

MANAGEMENT_URL = "https://management.azure.com"
DEFAULT_API_VERSION = "2024-04-01"


class AzureSettings(BaseSettings):
    """Azure credentials and billing scopes.

    Reads ``AZURE_TENANT_ID``, ``AZURE_CLIENT_ID``, ``AZURE_CLIENT_SECRET``
    and ``AZURE_BILLING_ACCOUNT_ID`` (multiple ids separated by commas).
    """

    tenant_id: Optional[str] = Field(default=None, description="Entra tenant id")
    client_id: Optional[str] = Field(default=None, description="App registration id")
    client_secret: Optional[str] = Field(default=None, description="App secret")
    billing_account_id: Optional[str] = Field(
        default=None, description="Comma-separated billing account ids"
    )
    management_url: str = Field(default=MANAGEMENT_URL, description="ARM endpoint")
    api_version: str = Field(default=DEFAULT_API_VERSION, description="Billing API version")

    model_config = SettingsConfigDict(
        env_prefix="AZURE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def billing_account_ids(self) -> List[str]:
        """Return the configured billing account scopes.

        Raises:
            ConfigurationError: If no billing account id is configured
        """
        ids = split_csv(self.billing_account_id)
        if not ids:
            raise ConfigurationError(
                "AZURE_BILLING_ACCOUNT_ID is not set",
                field="billing_account_id",
                suggestion="Set it in the environment. Multiple IDs can be separated by commas.",
            )
        return ids

    def require_credentials(self) -> Tuple[str, str, str]:
        """Return (tenant_id, client_id, client_secret) or raise."""
        missing = [
            name
            for name in ("tenant_id", "client_id", "client_secret")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationError(
                "Missing Azure credential configuration",
                field=", ".join(f"AZURE_{m.upper()}" for m in missing),
                suggestion="Set the variables in the environment or a .env file.",
            )
        return self.tenant_id, self.client_id, self.client_secret  # type: ignore[return-value]


class LookupSettings(BaseSettings):
    """Tunables for the resolution engine, read with the INVOICE_LOOKUP_ prefix."""

    scope_attempts: int = Field(default=3, ge=1, le=10, description="Attempts per scope")
    retry_initial_delay: float = Field(default=1.0, ge=0.0, description="Seconds")
    retry_max_delay: float = Field(default=30.0, ge=0.0, description="Seconds")
    retry_exponential: bool = Field(default=True)
    poll_max_attempts: int = Field(default=18, ge=1, description="Poll iterations")
    poll_not_found_threshold: int = Field(default=5, ge=1, description="Consecutive 404s")
    poll_default_retry_after: float = Field(default=10.0, ge=0.0, description="Seconds")
    request_timeout: float = Field(default=30.0, gt=0.0, description="Seconds")
    fallback_to_catalog: bool = Field(
        default=False, description="Scan the invoice list when direct lookup fails"
    )
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="console", description="Log format: 'json' or 'console'")
    log_file: Optional[str] = Field(default=None, description="Optional log file path")

    model_config = SettingsConfigDict(
        env_prefix="INVOICE_LOOKUP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("log_format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        valid_formats = ["json", "console"]
        if v.lower() not in valid_formats:
            raise ValueError(f"log_format must be one of: {valid_formats}")
        return v.lower()

    def retry_options(self) -> RetryOptions:
        return RetryOptions(
            initial_delay=self.retry_initial_delay,
            max_delay=self.retry_max_delay,
            exponential=self.retry_exponential,
        )


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except FileNotFoundError:
        raise ConfigurationError(f"Config file not found: {path}", field="config")
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}", field="config")

    if not isinstance(raw, dict):
        raise ConfigurationError(
            f"Config file {path} must contain a mapping", field="config"
        )
    return expand_options(raw)


def load_settings(
    config_path: Optional[Union[str, Path]] = None,
) -> Tuple[AzureSettings, LookupSettings]:
    """Load settings from the environment, overlaid with an optional YAML file.

    Values in the YAML file take precedence over environment variables.

    Raises:
        ConfigurationError: If the file is unreadable or values are invalid
    """
    overrides: Dict[str, Any] = {}
    if config_path:
        overrides = _read_yaml(Path(config_path))
        logger.debug("Loaded config overrides from %s", config_path)

    try:
        azure = AzureSettings(**(overrides.get("azure") or {}))
        lookup = LookupSettings(**(overrides.get("lookup") or {}))
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid configuration: {exc.error_count()} error(s)",
            details={"errors": "; ".join(e["msg"] for e in exc.errors())},
        ) from exc

    return azure, lookup
