"""Pi-hole response models"""

from dataclasses import dataclass
from typing import Optional, Any, List

from blockerwatch.config import SummaryFieldMap


def value_at(document: Any, dotted_path: str) -> Any:
    """Walk ``a.b.c`` through nested dicts; None when any step is missing"""
    node = document
    for key in dotted_path.split("."):
        if not isinstance(node, dict):
            return None
        node = node.get(key)
        if node is None:
            return None
    return node


def first_number(document: Any, paths: List[str], cast=int) -> Optional[Any]:
    """First value along ``paths`` that converts with ``cast``"""
    for path in paths:
        value = value_at(document, path)
        if value is None or isinstance(value, bool):
            continue
        try:
            return cast(str(value).strip()) if isinstance(value, str) else cast(value)
        except (TypeError, ValueError):
            continue
    return None


@dataclass
class PiHoleSummary:
    """Fields of /api/stats/summary used by the monitor"""
    total_queries: int = 0
    blocked_queries: int = 0
    percent_blocked: Optional[float] = None
    blocklist_size: int = 0
    gravity_last_update: int = 0

    @classmethod
    def from_json(cls, data: Any, fields: Optional[SummaryFieldMap] = None) -> "PiHoleSummary":
        fields = fields or SummaryFieldMap()
        return cls(
            total_queries=max(0, first_number(data, fields.total_queries) or 0),
            blocked_queries=max(0, first_number(data, fields.blocked_queries) or 0),
            percent_blocked=first_number(data, fields.percent_blocked, cast=float),
            blocklist_size=max(0, first_number(data, fields.blocklist_size) or 0),
            gravity_last_update=first_number(data, fields.gravity_last_update) or 0,
        )


def parse_blocking_flag(value: Any) -> Optional[bool]:
    """Pi-hole reports blocking as "enabled"/"disabled" or as a boolean"""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ("enabled", "true"):
            return True
        if text in ("disabled", "false"):
            return False
    return None
