"""
Order timeline entries.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from dispatch_backend.app.models.order import Order


def append_timeline(order: Order, action: str, meta: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Append ``{action, meta, timestamp}``. The list is replaced so the JSON column is flagged dirty."""
    entry = {
        "action": action,
        "meta": meta or {},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    order.timeline = list(order.timeline or []) + [entry]
    return entry


def sorted_timeline(order: Order) -> List[Dict[str, Any]]:
    return sorted(order.timeline or [], key=lambda entry: entry.get("timestamp") or "")
