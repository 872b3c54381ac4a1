"""AdGuard Home response models"""

from dataclasses import dataclass
from typing import Optional, Any, List

from blockerwatch.integrations.models import BlockedDomain


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    try:
        return max(0, int(float(value)))
    except (TypeError, ValueError):
        return 0


@dataclass
class AdGuardStats:
    """Fields of /control/stats used by the monitor"""
    num_dns_queries: int = 0
    num_blocked_filtering: int = 0
    avg_processing_time: Optional[float] = None  # seconds

    @classmethod
    def from_json(cls, data: dict) -> "AdGuardStats":
        avg = data.get("avg_processing_time")
        try:
            avg = float(avg) if avg is not None and not isinstance(avg, bool) else None
        except (TypeError, ValueError):
            avg = None
        return cls(
            num_dns_queries=_to_int(data.get("num_dns_queries")),
            num_blocked_filtering=_to_int(data.get("num_blocked_filtering")),
            avg_processing_time=avg,
        )

    @property
    def average_response_ms(self) -> Optional[int]:
        if self.avg_processing_time is None:
            return None
        return max(0, round(self.avg_processing_time * 1000))


def parse_top_entry(entry: Any) -> Optional[BlockedDomain]:
    """Decode one ``top_blocked_domains`` entry.

    Accepted forms: ``["example.com", 12]``, ``{"domain": "example.com",
    "count": 12}`` and AdGuard's own ``{"example.com": 12}``.
    """
    domain: Any = None
    count: Any = 0
    if isinstance(entry, (list, tuple)) and len(entry) >= 2:
        domain, count = entry[0], entry[1]
    elif isinstance(entry, dict):
        if "domain" in entry:
            domain, count = entry.get("domain"), entry.get("count", 0)
        elif len(entry) == 1:
            domain, count = next(iter(entry.items()))
    if domain is None:
        return None
    domain = str(domain).strip()
    if not domain:
        return None
    return BlockedDomain(domain=domain, count=_to_int(count))


def enabled_rules_count(filters: List[Any]) -> int:
    """Sum of rules_count over enabled filter lists"""
    total = 0
    for item in filters:
        if isinstance(item, dict) and item.get("enabled") is True:
            total += _to_int(item.get("rules_count"))
    return total


def newest_filter_update(filters: List[Any]) -> Optional[str]:
    """Latest last_updated timestamp among enabled filter lists"""
    newest = None
    for item in filters:
        if not isinstance(item, dict) or item.get("enabled") is not True:
            continue
        stamp = item.get("last_updated")
        if isinstance(stamp, str) and stamp and (newest is None or stamp > newest):
            newest = stamp
    return newest
