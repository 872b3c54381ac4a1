"""Base class for DNS blocker appliance handlers"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Any

from blockerwatch.config import ConnectionConfig, DnsBlockerType
from blockerwatch.integrations.models import (
    NormalizedStats,
    TopBlocked,
    BlockingStatus,
    GravityInfo,
    TrendInfo,
)
from blockerwatch.utils.http_client import HttpClient
from blockerwatch.utils.time_format import Clock, utc_now


class DnsBlockerHandler(ABC):
    """Common contract for Pi-hole and AdGuard Home.

    Public methods never raise on network, HTTP or parsing problems. They
    return ``None``, ``False`` or ``""`` instead so that polling jobs stay
    free of per-call exception handling.
    """

    # Handler metadata - override in subclasses
    platform: DnsBlockerType = DnsBlockerType.PIHOLE
    gravity_label: str = "Gravity"

    def __init__(
        self,
        config: ConnectionConfig,
        http_client: Optional[HttpClient] = None,
        clock: Optional[Clock] = None,
    ):
        self.config = config
        self.http = http_client or HttpClient()
        self.clock = clock or utc_now

    @property
    def source(self) -> str:
        return self.platform.value

    @property
    def host(self) -> str:
        return self.config.host

    @property
    def needs_rebuild(self) -> bool:
        """True when only a fresh construction can make this handler useful again"""
        return False

    @abstractmethod
    def authenticate(self) -> bool:
        """Establish (Pi-hole) or verify (AdGuard Home) credentials"""
        pass

    @abstractmethod
    def get_stats(self) -> Optional[NormalizedStats]:
        pass

    @abstractmethod
    def get_last_blocked(self) -> str:
        """Most recently blocked domain, or "" """
        pass

    @abstractmethod
    def get_version(self) -> str:
        pass

    @abstractmethod
    def get_top_blocked(self, count: int) -> Optional[TopBlocked]:
        """At most ``count`` domains; blank domains never take a slot"""
        pass

    @abstractmethod
    def get_gravity_info(self) -> Optional[GravityInfo]:
        pass

    @abstractmethod
    def get_trend(self) -> Optional[TrendInfo]:
        """Blocked percentage and list age, fetched together"""
        pass

    @abstractmethod
    def set_dns_blocking(self, blocking: bool, timer_seconds: Optional[int] = None) -> Optional[Dict[str, Any]]:
        """Enable or disable blocking; returns the raw response document"""
        pass

    @abstractmethod
    def get_dns_blocking_status(self) -> Optional[BlockingStatus]:
        pass

    def get_gravity_last_update(self) -> str:
        """Human readable list age, e.g. "Gravity: 3h 12m ago"; "" on failure"""
        info = self.get_gravity_info()
        if info is None:
            return ""
        return info.describe(self.gravity_label)

    def close(self) -> None:
        """Release the HTTP client"""
        self.http.close()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.config.address}>"
