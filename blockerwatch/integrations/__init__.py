"""blockerwatch integrations

Handlers for the supported DNS blocker appliances, all exposing the
``DnsBlockerHandler`` contract.
"""

from blockerwatch.integrations.base import DnsBlockerHandler
from blockerwatch.integrations.factory import create_handler
from blockerwatch.integrations.models import (
    BlockedDomain,
    BlockingState,
    BlockingStatus,
    GravityInfo,
    NormalizedStats,
    TopBlocked,
    TrendInfo,
)

__all__ = [
    "DnsBlockerHandler",
    "create_handler",
    "BlockedDomain",
    "BlockingState",
    "BlockingStatus",
    "GravityInfo",
    "NormalizedStats",
    "TopBlocked",
    "TrendInfo",
]
