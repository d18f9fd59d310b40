"""Activity records for lookups.

Each activity becomes one structured log record on the
``invoice_lookup.activity`` logger; shipping it anywhere else (mail, an
audit store) is left to whatever handler is attached there.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

__all__ = ["ActivityType", "Actor", "record_activity"]

activity_logger = logging.getLogger("invoice_lookup.activity")
logger = logging.getLogger(__name__)


class ActivityType(str, Enum):
    SEARCH_INVOICE = "search-invoice"


@dataclass
class Actor:
    """Who triggered the activity."""

    email: str = ""
    ip_address: str = ""
    geo_data: Dict[str, Any] = field(default_factory=dict)


def record_activity(
    activity: ActivityType,
    actor: Optional[Actor] = None,
    data: Optional[Dict[str, Any]] = None,
) -> Optional[Dict[str, Any]]:
    """Emit one activity record and return its payload.

    Failures while recording are logged and swallowed (returns None); an
    activity record never breaks the lookup that produced it.
    """
    try:
        payload: Dict[str, Any] = {
            "activity": ActivityType(activity).value,
            "actor": asdict(actor or Actor()),
            "data": dict(data or {}),
            "date": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        }
        activity_logger.info(
            "Activity %s", payload["activity"], extra={"activity": payload}
        )
        return payload
    except Exception as exc:
        logger.error("Failed to record activity %r: %s", activity, exc)
        return None
