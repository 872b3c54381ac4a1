"""Platform-agnostic data produced by the appliance handlers.

Every object here is created fresh per poll and handed to the display layer;
handlers never keep them around.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any, Tuple

from blockerwatch.utils.time_format import format_age, format_unknown

SCHEMA_STATS_V1 = "dnsblocker.stats.v1"
SCHEMA_TOP_BLOCKED_V1 = "dnsblocker.top_blocked.v1"
SCHEMA_BLOCKING_STATUS_V1 = "dnsblocker.blocking_status.v1"


class BlockingState(str, Enum):
    """DNS blocking state as reported by an appliance"""
    ENABLED = "enabled"
    DISABLED = "disabled"
    UNKNOWN = "unknown"

    @classmethod
    def from_enabled(cls, enabled: Optional[bool]) -> "BlockingState":
        if enabled is None:
            return cls.UNKNOWN
        return cls.ENABLED if enabled else cls.DISABLED


def percent_of(part: int, total: int) -> float:
    """Percentage clamped to [0, 100]; 0 when total is 0"""
    if total <= 0 or part <= 0:
        return 0.0
    return min(100.0, part * 100.0 / total)


@dataclass(frozen=True)
class Session:
    """Pi-hole API session"""
    sid: str
    obtained_at: datetime

    @property
    def masked(self) -> str:
        if len(self.sid) < 10:
            return "***"
        return self.sid[:10] + "..."


@dataclass(frozen=True)
class NormalizedStats:
    """Query counters in the unified schema"""
    source: str
    host: str = ""
    total_queries: int = 0
    blocked_queries: int = 0
    percent_blocked: float = 0.0
    average_response_ms: Optional[int] = None
    blocklist_size: int = 0
    status: BlockingState = BlockingState.UNKNOWN

    @property
    def accepted_queries(self) -> int:
        return max(0, self.total_queries - self.blocked_queries)

    def to_dict(self) -> Dict[str, Any]:
        enabled = None if self.status == BlockingState.UNKNOWN else self.status == BlockingState.ENABLED
        return {
            "schema": SCHEMA_STATS_V1,
            "source": self.source,
            "host": self.host,
            "queries": {
                "total": self.total_queries,
                "blocked": self.blocked_queries,
                "percent_blocked": self.percent_blocked,
                "average_response_ms": self.average_response_ms,
            },
            "blocklist": {"size": self.blocklist_size},
            "blocking": {"enabled": enabled},
            "status": self.status.value,
        }


@dataclass(frozen=True)
class BlockedDomain:
    domain: str
    count: int


@dataclass(frozen=True)
class TopBlocked:
    """Most blocked domains, descending by hit count"""
    source: str
    host: str = ""
    domains: Tuple[BlockedDomain, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema": SCHEMA_TOP_BLOCKED_V1,
            "source": self.source,
            "host": self.host,
            "domains": [{"domain": d.domain, "count": d.count} for d in self.domains],
        }


@dataclass(frozen=True)
class BlockingStatus:
    source: str
    host: str = ""
    enabled: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema": SCHEMA_BLOCKING_STATUS_V1,
            "source": self.source,
            "host": self.host,
            "blocking": {"enabled": self.enabled},
        }


@dataclass(frozen=True)
class GravityInfo:
    """Age of the blocklist database (Pi-hole gravity / AdGuard filters)"""
    file_exists: bool
    age_seconds: int = 0

    def describe(self, prefix: str) -> str:
        if not self.file_exists:
            return format_unknown(prefix)
        return format_age(prefix, self.age_seconds)


@dataclass(frozen=True)
class TrendInfo:
    """Inputs of the trend tile: blocked share plus list age text"""
    source: str
    host: str = ""
    percent_blocked: float = 0.0
    gravity_text: str = ""


def top_domains(entries: List[BlockedDomain], count: int) -> Tuple[BlockedDomain, ...]:
    """Stable descending sort by count, truncated to ``count``"""
    ordered = sorted(entries, key=lambda d: -d.count)
    return tuple(ordered[:max(0, count)])
