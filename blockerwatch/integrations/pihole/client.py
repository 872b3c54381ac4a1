"""Pi-hole v6 REST API handler

Session based: ``POST /api/auth`` trades the app password for a ``sid`` that
is sent as a query parameter on every call (and as ``X-FTL-SID`` on calls
that change state).
"""

import logging
import threading
from typing import Optional, Dict, Any

from blockerwatch.config import ConnectionConfig, DnsBlockerType, SummaryFieldMap
from blockerwatch.integrations.base import DnsBlockerHandler
from blockerwatch.integrations.models import (
    BlockedDomain,
    BlockingStatus,
    GravityInfo,
    NormalizedStats,
    Session,
    TopBlocked,
    TrendInfo,
    percent_of,
    top_domains,
)
from blockerwatch.integrations.pihole.exceptions import (
    PiHoleError,
    PiHoleAuthenticationError,
    PiHoleConnectionError,
    PiHoleAPIError,
)
from blockerwatch.integrations.pihole.models import PiHoleSummary, parse_blocking_flag
from blockerwatch.utils.http_client import HttpClient, HttpResponse, TransportError, redact_text
from blockerwatch.utils.time_format import Clock, epoch_age_seconds

logger = logging.getLogger(__name__)

API_PATH = "/api"
AUTH_ENDPOINT = "auth"
VERSION_ENDPOINT = "info/version"
SUMMARY_ENDPOINT = "stats/summary"
RECENT_BLOCKED_ENDPOINT = "stats/recent_blocked"
TOP_DOMAINS_ENDPOINT = "stats/top_domains"
BLOCKING_ENDPOINT = "dns/blocking"

SID_PARAM = "sid"
SID_HEADER = "X-FTL-SID"


class PiHoleHandler(DnsBlockerHandler):
    """Handler for the Pi-hole v6 API"""

    platform = DnsBlockerType.PIHOLE
    gravity_label = "Gravity"

    def __init__(
        self,
        config: ConnectionConfig,
        http_client: Optional[HttpClient] = None,
        clock: Optional[Clock] = None,
        field_map: Optional[SummaryFieldMap] = None,
        authenticate_on_init: bool = True,
    ):
        super().__init__(config, http_client, clock)
        self.api_url = f"{config.base_url}{API_PATH}"
        self.field_map = field_map or SummaryFieldMap()

        self._session: Optional[Session] = None
        self._auth_lock = threading.Lock()

        if authenticate_on_init:
            self.authenticate()

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None

    @property
    def needs_rebuild(self) -> bool:
        return self._session is None and self.config.has_valid_password()

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def authenticate(self) -> bool:
        """Trade the app password for a session id"""
        if not self.config.has_valid_password():
            logger.warning(f"Pi-hole {self.config.address}: no app password configured")
            return False

        with self._auth_lock:
            return self._login()

    def _login(self) -> bool:
        # Caller holds _auth_lock; the previous session stays visible until replaced
        session = self._fetch_session()
        self._session = session
        if session is None:
            return False
        logger.info(f"Pi-hole {self.config.address}: authenticated, session {session.masked}")
        return True

    def _fetch_session(self) -> Optional[Session]:
        try:
            response = self.http.post_json(
                f"{self.api_url}/{AUTH_ENDPOINT}",
                {"password": self.config.secret},
            )
        except TransportError as e:
            logger.error(f"Pi-hole {self.config.address}: authentication failed: {e}")
            return None

        if not response.is_successful:
            logger.info(f"Pi-hole {self.config.address}: authentication failed (HTTP {response.status_code})")
            return None

        data = response.json()
        session = data.get("session") if isinstance(data, dict) else None
        if not isinstance(session, dict):
            logger.warning(f"Pi-hole {self.config.address}: no session in auth response")
            return None

        sid = session.get("sid")
        if not sid or not str(sid).strip():
            logger.info(
                f"Pi-hole {self.config.address}: auth refused "
                f"(valid={session.get('valid')}, message={session.get('message')})"
            )
            return None
        return Session(sid=str(sid), obtained_at=self.clock())

    def reauthenticate(self, rejected: Session) -> bool:
        """Replace a session the appliance rejected.

        Another thread may already have done so; its newer session is kept
        instead of opening a second one.
        """
        with self._auth_lock:
            current = self._session
            if current is not None and current is not rejected:
                return True
            return self._login()

    def logout(self) -> None:
        """Best-effort ``DELETE /api/auth`` so the appliance frees the session slot"""
        session = self._session
        if session is None:
            return
        self._session = None
        try:
            self.http.delete(
                f"{self.api_url}/{AUTH_ENDPOINT}",
                params={SID_PARAM: session.sid},
                headers={SID_HEADER: session.sid},
            )
        except TransportError as e:
            logger.debug(f"Pi-hole {self.config.address}: logout failed: {e}")

    def close(self) -> None:
        self.logout()
        super().close()

    # ------------------------------------------------------------------
    # Request helpers
    # ------------------------------------------------------------------

    def _require_session(self) -> Session:
        session = self._session
        if session is None:
            raise PiHoleAuthenticationError("Not authenticated")
        return session

    def _send(self, method: str, endpoint: str, params: Dict[str, Any],
              payload: Any, session: Session) -> HttpResponse:
        url = f"{self.api_url}/{endpoint}"
        query = {SID_PARAM: session.sid}
        query.update(params)
        try:
            if method == "GET":
                return self.http.get(url, params=query)
            return self.http.post_json(url, payload, params=query, headers={SID_HEADER: session.sid})
        except TransportError as e:
            raise PiHoleConnectionError(str(e)) from e

    def _request(
        self,
        endpoint: str,
        method: str = "GET",
        params: Optional[Dict[str, Any]] = None,
        payload: Any = None,
    ) -> Any:
        """Authenticated API call returning the decoded JSON body.

        A 401/403 gets exactly one re-authentication and one retry. If that
        fails too the handler stays unauthenticated until it is rebuilt.
        """
        params = params or {}
        session = self._require_session()
        response = self._send(method, endpoint, params, payload, session)

        if response.is_unauthorized:
            logger.info(f"Pi-hole {self.config.address}: session rejected on {endpoint}, re-authenticating once")
            if not self.reauthenticate(session):
                raise PiHoleAuthenticationError("Re-authentication failed")
            session = self._require_session()
            response = self._send(method, endpoint, params, payload, session)
            if response.is_unauthorized:
                with self._auth_lock:
                    if self._session is session:
                        self._session = None
                raise PiHoleAuthenticationError(f"Session rejected twice on {endpoint}")

        if not response.is_successful:
            raise PiHoleAPIError(f"API request failed (HTTP {response.status_code}): {endpoint}", response.status_code)

        data = response.json()
        if data is None:
            raise PiHoleAPIError(f"Malformed JSON from {endpoint}: {redact_text(response.text[:200])}")
        return data

    def _log_failure(self, what: str, error: PiHoleError) -> None:
        # Expected while unauthenticated; anything else is worth a warning
        if isinstance(error, PiHoleAuthenticationError):
            logger.debug(f"Pi-hole {self.config.address}: {what} unavailable: {error}")
        else:
            logger.warning(f"Pi-hole {self.config.address}: {what} unavailable: {error}")

    def _summary(self) -> PiHoleSummary:
        data = self._request(SUMMARY_ENDPOINT)
        if not isinstance(data, dict):
            raise PiHoleAPIError("Unexpected summary shape")
        return PiHoleSummary.from_json(data, self.field_map)

    def _to_stats(self, summary: PiHoleSummary) -> NormalizedStats:
        total = summary.total_queries
        blocked = summary.blocked_queries
        percent = summary.percent_blocked
        if percent is None or percent <= 0.0:
            percent = percent_of(blocked, total)
        if total == 0:
            percent = 0.0
        return NormalizedStats(
            source=self.source,
            host=self.host,
            total_queries=total,
            blocked_queries=blocked,
            percent_blocked=min(100.0, max(0.0, percent)),
            blocklist_size=summary.blocklist_size,
        )

    def _to_gravity(self, summary: PiHoleSummary) -> GravityInfo:
        if summary.gravity_last_update <= 0:
            return GravityInfo(file_exists=False)
        try:
            age = epoch_age_seconds(summary.gravity_last_update, self.clock)
        except (OverflowError, OSError, ValueError) as e:
            logger.warning(f"Pi-hole {self.config.address}: bad gravity timestamp {summary.gravity_last_update}: {e}")
            return GravityInfo(file_exists=False)
        return GravityInfo(file_exists=True, age_seconds=age)

    # ------------------------------------------------------------------
    # DnsBlockerHandler
    # ------------------------------------------------------------------

    def get_stats(self) -> Optional[NormalizedStats]:
        try:
            return self._to_stats(self._summary())
        except PiHoleError as e:
            self._log_failure("stats", e)
            return None

    def get_last_blocked(self) -> str:
        try:
            data = self._request(RECENT_BLOCKED_ENDPOINT, params={"count": 1})
        except PiHoleError as e:
            self._log_failure("recent blocked", e)
            return ""
        blocked = data.get("blocked") if isinstance(data, dict) else None
        if isinstance(blocked, list) and blocked:
            return str(blocked[0] or "")
        return ""

    def get_version(self) -> str:
        """FTL version, falling back to the core version"""
        try:
            data = self._request(VERSION_ENDPOINT)
        except PiHoleError as e:
            self._log_failure("version", e)
            return ""
        version = data.get("version") if isinstance(data, dict) else None
        if not isinstance(version, dict):
            return ""
        for component in ("ftl", "core"):
            local = (version.get(component) or {}).get("local") or {}
            if isinstance(local, dict) and local.get("version"):
                return str(local["version"])
        return ""

    def get_top_blocked(self, count: int) -> Optional[TopBlocked]:
        if count <= 0:
            return None
        try:
            data = self._request(TOP_DOMAINS_ENDPOINT, params={"blocked": "true", "count": count})
        except PiHoleError as e:
            self._log_failure("top domains", e)
            return None

        domains = data.get("domains") if isinstance(data, dict) else None
        if not isinstance(domains, list):
            logger.warning(f"Pi-hole {self.config.address}: unexpected top domains shape: {str(data)[:200]}")
            return None

        entries = []
        for item in domains:
            if not isinstance(item, dict):
                continue
            domain = str(item.get("domain") or "").strip()
            if not domain:
                continue
            try:
                hits = max(0, int(item.get("count") or 0))
            except (TypeError, ValueError):
                hits = 0
            entries.append(BlockedDomain(domain=domain, count=hits))

        return TopBlocked(source=self.source, host=self.host, domains=top_domains(entries, count))

    def get_gravity_info(self) -> Optional[GravityInfo]:
        try:
            return self._to_gravity(self._summary())
        except PiHoleError as e:
            self._log_failure("gravity", e)
            return None

    def get_trend(self) -> Optional[TrendInfo]:
        try:
            summary = self._summary()
        except PiHoleError as e:
            self._log_failure("trend", e)
            return None
        stats = self._to_stats(summary)
        return TrendInfo(
            source=self.source,
            host=self.host,
            percent_blocked=stats.percent_blocked,
            gravity_text=self._to_gravity(summary).describe(self.gravity_label),
        )

    def set_dns_blocking(self, blocking: bool, timer_seconds: Optional[int] = None) -> Optional[Dict[str, Any]]:
        """POST /api/dns/blocking; a timer makes Pi-hole revert after that many seconds"""
        payload = {"blocking": bool(blocking), "timer": timer_seconds}
        try:
            data = self._request(BLOCKING_ENDPOINT, method="POST", payload=payload)
        except PiHoleError as e:
            logger.error(f"Pi-hole {self.config.address}: failed to set blocking={blocking}: {e}")
            return None
        logger.info(f"Pi-hole {self.config.address}: blocking set to {blocking} (timer={timer_seconds})")
        return data if isinstance(data, dict) else {"response": data}

    def get_dns_blocking_status(self) -> Optional[BlockingStatus]:
        try:
            data = self._request(BLOCKING_ENDPOINT)
        except PiHoleError as e:
            self._log_failure("blocking status", e)
            return None
        flag = parse_blocking_flag(data.get("blocking")) if isinstance(data, dict) else None
        return BlockingStatus(source=self.source, host=self.host, enabled=flag)

