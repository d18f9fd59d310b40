"""Environment helpers for lookup configuration.

Covers the three places the environment reaches settings: a ``.env`` file
loaded through python-dotenv, ``${VAR}`` references inside a YAML override
file, and comma-separated billing account lists.

    azure:
      client_secret: ${BILLING_APP_SECRET}
      billing_account_id: "${PRIMARY_ACCOUNT},9999:0000"
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, List, Optional, Union

from dotenv import load_dotenv

__all__ = ["expand_options", "load_env_file", "split_csv"]

_REFERENCE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

# Marks a value that was nothing but an unset reference
_UNSET = object()


def load_env_file(path: Optional[Union[str, Path]] = None, *, override: bool = False) -> bool:
    """Load ``path`` (default: the nearest ``.env``) into ``os.environ``.

    Variables already set win unless ``override`` is true. Returns whether a
    file was found.
    """
    return load_dotenv(dotenv_path=path, override=override)


def _resolve(text: str) -> Any:
    whole = _REFERENCE.fullmatch(text)
    if whole and whole.group(1) not in os.environ:
        return _UNSET
    # references embedded in longer text stay verbatim when unset
    return _REFERENCE.sub(lambda m: os.environ.get(m.group(1), m.group(0)), text)


def _expand(value: Any) -> Any:
    if isinstance(value, str):
        return _resolve(value)
    if isinstance(value, dict):
        expanded = {key: _expand(item) for key, item in value.items()}
        return {key: item for key, item in expanded.items() if item is not _UNSET}
    if isinstance(value, list):
        return [item for item in map(_expand, value) if item is not _UNSET]
    return value


def expand_options(options: Any) -> Any:
    """Resolve ``${VAR}`` references throughout a parsed YAML document.

    A value consisting only of an unset reference is dropped, so the setting
    falls back to its environment variable or default instead of receiving
    the literal placeholder.

    Example:
        >>> os.environ["PRIMARY_ACCOUNT"] = "1234:5678"
        >>> expand_options({"azure": {"billing_account_id": "${PRIMARY_ACCOUNT}"}})
        {'azure': {'billing_account_id': '1234:5678'}}
    """
    return _expand(options)


def split_csv(value: Optional[str]) -> List[str]:
    """Billing account ids from a comma-separated value, blanks dropped.

    Example:
        >>> split_csv(" 1234:5678, ,9999:0000 ")
        ['1234:5678', '9999:0000']
    """
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]
