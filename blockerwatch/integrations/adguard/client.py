"""AdGuard Home REST API handler

Every request carries HTTP Basic credentials; there is no session to keep.
"""

import base64
import logging
from typing import Optional, Dict, Any

from blockerwatch.config import ConnectionConfig, DnsBlockerType
from blockerwatch.integrations.base import DnsBlockerHandler
from blockerwatch.integrations.models import (
    BlockingStatus,
    GravityInfo,
    NormalizedStats,
    TopBlocked,
    TrendInfo,
    percent_of,
    top_domains,
)
from blockerwatch.integrations.adguard.models import (
    AdGuardStats,
    enabled_rules_count,
    newest_filter_update,
    parse_top_entry,
)
from blockerwatch.integrations.adguard.exceptions import (
    AdGuardError,
    AdGuardAuthenticationError,
    AdGuardConnectionError,
    AdGuardAPIError,
)
from blockerwatch.utils.http_client import HttpClient, TransportError, redact_text
from blockerwatch.utils.time_format import Clock, age_seconds, parse_iso8601

logger = logging.getLogger(__name__)

API_PATH = "/control"
STATUS_ENDPOINT = "status"
STATS_ENDPOINT = "stats"
QUERYLOG_ENDPOINT = "querylog"
DNS_INFO_ENDPOINT = "dns_info"
DNS_CONFIG_ENDPOINT = "dns_config"
FILTERING_STATUS_ENDPOINT = "filtering/status"


def basic_auth_header(username: str, password: str) -> str:
    """``Basic base64(username:password)`` with UTF-8 encoded credentials"""
    credentials = f"{username}:{password}"
    encoded = base64.b64encode(credentials.encode("utf-8")).decode("ascii")
    return f"Basic {encoded}"


class AdGuardHomeHandler(DnsBlockerHandler):
    """Handler for the AdGuard Home API"""

    platform = DnsBlockerType.ADGUARD_HOME
    gravity_label = "Filters"

    def __init__(
        self,
        config: ConnectionConfig,
        http_client: Optional[HttpClient] = None,
        clock: Optional[Clock] = None,
    ):
        super().__init__(config, http_client, clock)
        self.api_url = f"{config.base_url}{API_PATH}"

        # No header at all when either credential is blank
        if config.has_valid_username() and config.has_valid_password():
            self._auth_header = basic_auth_header(config.username, config.secret)
        else:
            self._auth_header = ""

    def _get_auth_header(self) -> Dict[str, str]:
        if self._auth_header:
            return {"Authorization": self._auth_header}
        return {}

    def _api_request(
        self,
        endpoint: str,
        method: str = "GET",
        params: Optional[Dict[str, Any]] = None,
        payload: Any = None,
    ) -> Any:
        """Make an API request to AdGuard Home, returning decoded JSON (or {} for an empty body)"""
        url = f"{self.api_url}/{endpoint}"
        try:
            if method.upper() == "GET":
                response = self.http.get(url, params=params, headers=self._get_auth_header())
            else:
                response = self.http.post_json(url, payload, params=params, headers=self._get_auth_header())
        except TransportError as e:
            raise AdGuardConnectionError(str(e)) from e

        if response.status_code == 401:
            raise AdGuardAuthenticationError("Authentication failed. Check username and password.")

        if not response.is_successful:
            raise AdGuardAPIError(f"API request failed (HTTP {response.status_code}): {endpoint}", response.status_code)

        # dns_config answers with an empty 200
        if not response.text.strip():
            return {}

        data = response.json()
        if data is None:
            raise AdGuardAPIError(f"Malformed JSON from {endpoint}: {redact_text(response.text[:200])}")
        return data

    def _api_object(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        data = self._api_request(endpoint, params=params)
        if not isinstance(data, dict):
            raise AdGuardAPIError(f"Unexpected response shape from {endpoint}")
        return data

    def _log_failure(self, what: str, error: AdGuardError) -> None:
        logger.warning(f"AdGuard Home {self.config.address}: {what} unavailable: {error}")

    # ------------------------------------------------------------------
    # DnsBlockerHandler
    # ------------------------------------------------------------------

    def authenticate(self) -> bool:
        """Credential check: GET /control/status must succeed"""
        if not self._auth_header:
            logger.warning(f"AdGuard Home {self.config.address}: username and password are required")
            return False
        try:
            self._api_request(STATUS_ENDPOINT)
        except AdGuardError as e:
            logger.info(f"AdGuard Home {self.config.address}: authentication failed: {e}")
            return False
        logger.info(f"Connected to AdGuard Home at {self.config.address}")
        return True

    def _blocklist_size(self) -> int:
        try:
            filters = self._api_object(FILTERING_STATUS_ENDPOINT).get("filters") or []
        except AdGuardError as e:
            logger.debug(f"AdGuard Home {self.config.address}: filter status unavailable: {e}")
            return 0
        return enabled_rules_count(filters if isinstance(filters, list) else [])

    def _to_stats(self, raw: AdGuardStats, blocklist_size: int = 0) -> NormalizedStats:
        total = raw.num_dns_queries
        blocked = raw.num_blocked_filtering
        return NormalizedStats(
            source=self.source,
            host=self.host,
            total_queries=total,
            blocked_queries=blocked,
            percent_blocked=percent_of(blocked, total),
            average_response_ms=raw.average_response_ms,
            blocklist_size=blocklist_size,
        )

    def get_stats(self) -> Optional[NormalizedStats]:
        try:
            raw = AdGuardStats.from_json(self._api_object(STATS_ENDPOINT))
        except AdGuardError as e:
            self._log_failure("stats", e)
            return None
        return self._to_stats(raw, self._blocklist_size())

    def get_last_blocked(self) -> str:
        try:
            data = self._api_object(QUERYLOG_ENDPOINT, params={"response_status": "filtered", "limit": 1})
        except AdGuardError as e:
            self._log_failure("query log", e)
            return ""
        entries = data.get("data")
        if isinstance(entries, list) and entries and isinstance(entries[0], dict):
            question = entries[0].get("question") or {}
            if isinstance(question, dict):
                return str(question.get("name") or "")
        return ""

    def get_version(self) -> str:
        try:
            status = self._api_object(STATUS_ENDPOINT)
        except AdGuardError as e:
            self._log_failure("version", e)
            return ""
        return str(status.get("version") or "")

    def get_top_blocked(self, count: int) -> Optional[TopBlocked]:
        if count <= 0:
            return None
        try:
            data = self._api_object(STATS_ENDPOINT)
        except AdGuardError as e:
            self._log_failure("top blocked domains", e)
            return None

        raw_entries = data.get("top_blocked_domains")
        if raw_entries is None:
            raw_entries = data.get("blocked_filtering")
        if not isinstance(raw_entries, list):
            logger.warning(f"AdGuard Home {self.config.address}: no top blocked domains in stats")
            return None

        entries = []
        for entry in raw_entries:
            if len(entries) >= count:
                break
            parsed = parse_top_entry(entry)
            if parsed is not None:
                entries.append(parsed)

        return TopBlocked(source=self.source, host=self.host, domains=top_domains(entries, count))

    def _gravity_from_status(self, status: Dict[str, Any]) -> GravityInfo:
        stamp = status.get("filters_updated_at")
        if not stamp:
            try:
                filters = self._api_object(FILTERING_STATUS_ENDPOINT).get("filters") or []
            except AdGuardError as e:
                logger.debug(f"AdGuard Home {self.config.address}: filter status unavailable: {e}")
                filters = []
            stamp = newest_filter_update(filters if isinstance(filters, list) else [])

        updated = parse_iso8601(stamp)
        if updated is None:
            if stamp:
                logger.warning(f"AdGuard Home {self.config.address}: unparseable filter timestamp {stamp!r}")
            return GravityInfo(file_exists=False)
        return GravityInfo(file_exists=True, age_seconds=age_seconds(updated, self.clock))

    def get_gravity_info(self) -> Optional[GravityInfo]:
        try:
            status = self._api_object(STATUS_ENDPOINT)
        except AdGuardError as e:
            self._log_failure("filter age", e)
            return None
        return self._gravity_from_status(status)

    def get_trend(self) -> Optional[TrendInfo]:
        try:
            raw = AdGuardStats.from_json(self._api_object(STATS_ENDPOINT))
            status = self._api_object(STATUS_ENDPOINT)
        except AdGuardError as e:
            self._log_failure("trend", e)
            return None
        return TrendInfo(
            source=self.source,
            host=self.host,
            percent_blocked=self._to_stats(raw).percent_blocked,
            gravity_text=self._gravity_from_status(status).describe(self.gravity_label),
        )

    def set_dns_blocking(self, blocking: bool, timer_seconds: Optional[int] = None) -> Optional[Dict[str, Any]]:
        """Read-modify-write of ``protection_enabled``.

        AdGuard Home has no auto-revert timer, so ``timer_seconds`` is
        accepted for interface compatibility and ignored.
        """
        if timer_seconds:
            logger.info(f"AdGuard Home {self.config.address}: ignoring timer={timer_seconds}s (not supported)")
        try:
            current = self._api_object(DNS_INFO_ENDPOINT)
            updated = dict(current)
            updated["protection_enabled"] = bool(blocking)
            data = self._api_request(DNS_CONFIG_ENDPOINT, method="POST", payload=updated)
        except AdGuardError as e:
            logger.error(f"AdGuard Home {self.config.address}: failed to set blocking={blocking}: {e}")
            return None
        logger.info(f"AdGuard Home {self.config.address}: protection set to {blocking}")
        return data if isinstance(data, dict) else {"response": data}

    def get_dns_blocking_status(self) -> Optional[BlockingStatus]:
        try:
            status = self._api_object(STATUS_ENDPOINT)
        except AdGuardError as e:
            self._log_failure("blocking status", e)
            return None
        enabled = status.get("protection_enabled")
        return BlockingStatus(
            source=self.source,
            host=self.host,
            enabled=enabled if isinstance(enabled, bool) else None,
        )
