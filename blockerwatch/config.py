"""Configuration for blockerwatch.

Connection details for each appliance are immutable values. Reconfiguring
builds new values (and new handlers) rather than mutating the old ones.
"""

from enum import Enum
from typing import Optional, List, Any
import os

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_PORT = 80
DEFAULT_SCHEME = "http"
VALID_SCHEMES = ("http", "https")


class DnsBlockerType(str, Enum):
    """Supported DNS blocker platforms"""
    PIHOLE = "pihole"
    ADGUARD_HOME = "adguard-home"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @classmethod
    def from_string(cls, value: Optional[str]) -> "DnsBlockerType":
        """Match by enum name, value or display name; unknown values mean Pi-hole"""
        if value is None or not str(value).strip():
            return cls.PIHOLE
        text = str(value).strip()
        for member in cls:
            if text.upper() == member.name or text.lower() == member.value:
                return member
            if text.lower() == member.display_name.lower():
                return member
        return cls.PIHOLE


_DISPLAY_NAMES = {
    DnsBlockerType.PIHOLE: "Pi-hole",
    DnsBlockerType.ADGUARD_HOME: "AdGuard Home",
}


class ConnectionConfig(BaseModel):
    """Connection details for one appliance"""
    model_config = ConfigDict(frozen=True)

    platform: DnsBlockerType = DnsBlockerType.PIHOLE
    host: str = ""
    port: int = DEFAULT_PORT
    scheme: str = DEFAULT_SCHEME
    username: str = ""  # AdGuard Home only
    secret: str = Field(default="", repr=False)  # Pi-hole app password / AdGuard password

    @field_validator("platform", mode="before")
    @classmethod
    def parse_platform(cls, v):
        if isinstance(v, DnsBlockerType):
            return v
        return DnsBlockerType.from_string(v)

    @field_validator("host", "username", "secret", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return "" if v is None else str(v)

    @field_validator("host")
    @classmethod
    def strip_host(cls, v):
        return v.strip()

    @field_validator("port", mode="before")
    @classmethod
    def clamp_port(cls, v):
        try:
            port = int(v)
        except (TypeError, ValueError):
            return DEFAULT_PORT
        if port <= 0 or port > 65535:
            return DEFAULT_PORT
        return port

    @field_validator("scheme", mode="before")
    @classmethod
    def normalize_scheme(cls, v):
        scheme = str(v or "").strip().lower()
        return scheme if scheme in VALID_SCHEMES else DEFAULT_SCHEME

    @classmethod
    def for_pihole(cls, host: str, port: int = DEFAULT_PORT, scheme: str = DEFAULT_SCHEME,
                   secret: str = "") -> "ConnectionConfig":
        return cls(platform=DnsBlockerType.PIHOLE, host=host, port=port, scheme=scheme, secret=secret)

    @classmethod
    def for_adguard_home(cls, host: str, port: int = DEFAULT_PORT, scheme: str = DEFAULT_SCHEME,
                         username: str = "", secret: str = "") -> "ConnectionConfig":
        return cls(
            platform=DnsBlockerType.ADGUARD_HOME,
            host=host,
            port=port,
            scheme=scheme,
            username=username,
            secret=secret,
        )

    def has_valid_address(self) -> bool:
        return bool(self.host.strip())

    def has_valid_password(self) -> bool:
        return bool(self.secret.strip())

    def has_valid_username(self) -> bool:
        return bool(self.username.strip())

    def is_fully_valid(self) -> bool:
        """Pi-hole needs host + secret; AdGuard Home also needs a username"""
        valid = self.has_valid_address() and self.has_valid_password()
        if self.platform == DnsBlockerType.ADGUARD_HOME:
            return valid and self.has_valid_username()
        return valid

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


class SummaryFieldMap(BaseModel):
    """Where to find each stat in a Pi-hole summary response.

    Each entry is a list of dotted paths tried in order, so the mapping can
    follow API changes without code changes.
    """
    total_queries: List[str] = ["queries.total", "queries.total_queries", "dns_queries_today"]
    blocked_queries: List[str] = ["queries.blocked", "queries.blocked_queries", "ads_blocked_today"]
    percent_blocked: List[str] = ["queries.percent_blocked", "ads_percentage_today"]
    blocklist_size: List[str] = [
        "gravity.domains_being_blocked",
        "domains.blocked",
        "domains_being_blocked",
    ]
    gravity_last_update: List[str] = ["gravity.last_update"]


class RefreshIntervals(BaseSettings):
    """Per-job polling periods in seconds"""
    model_config = SettingsConfigDict(env_prefix="BLOCKERWATCH_REFRESH_")

    status: int = 5
    fluid: int = 15
    active: int = 60
    top_x: int = 5

    @field_validator("status", "fluid", "active", "top_x", mode="before")
    @classmethod
    def positive_or_default(cls, v, info):
        defaults = {"status": 5, "fluid": 15, "active": 60, "top_x": 5}
        try:
            value = int(v)
        except (TypeError, ValueError):
            return defaults[info.field_name]
        return value if value > 0 else defaults[info.field_name]


class HttpConfig(BaseSettings):
    """HTTP transport settings"""
    model_config = SettingsConfigDict(env_prefix="BLOCKERWATCH_HTTP_")

    connect_timeout: float = 5.0
    request_timeout: float = 10.0
    verify_ssl: bool = True  # Set False for self-signed appliance certs


class MonitorSettings(BaseSettings):
    """Main monitor configuration"""
    model_config = SettingsConfigDict(
        env_prefix="BLOCKERWATCH_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    dns1: Optional[ConnectionConfig] = None
    dns2: Optional[ConnectionConfig] = None
    refresh: RefreshIntervals = RefreshIntervals()
    top_x: int = 5
    http: HttpConfig = HttpConfig()
    shutdown_grace_seconds: float = 5.0
    pihole_fields: SummaryFieldMap = SummaryFieldMap()

    @field_validator("top_x", mode="before")
    @classmethod
    def top_x_positive(cls, v):
        try:
            value = int(v)
        except (TypeError, ValueError):
            return 5
        return value if value > 0 else 5

    @property
    def connections(self) -> List[ConnectionConfig]:
        """Configured appliances, primary first"""
        return [c for c in (self.dns1, self.dns2) if c is not None]

    @classmethod
    def from_yaml(cls, yaml_path: str = "config.yaml") -> "MonitorSettings":
        """Load settings from a YAML file, defaults when absent or empty"""
        if not os.path.exists(yaml_path):
            return cls()

        with open(yaml_path, "r") as f:
            yaml_data: Any = yaml.safe_load(f)

        if not yaml_data:
            return cls()

        return cls(**yaml_data)
