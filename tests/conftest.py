"""Pytest fixtures for the blockerwatch test suite

Appliances are simulated with httpx.MockTransport, so no test touches the
network.
"""

import base64
import json
import pytest
from datetime import datetime, timedelta, timezone

import httpx

from blockerwatch.config import ConnectionConfig
from blockerwatch.integrations.adguard.client import AdGuardHomeHandler
from blockerwatch.integrations.pihole.client import PiHoleHandler
from blockerwatch.utils.http_client import HttpClient

# 2026-10-19 12:00:00 UTC
FIXED_NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


class FixedClock:
    """Callable clock that only moves when told to"""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakePiHole:
    """Minimal Pi-hole v6 API"""

    def __init__(self, password: str = "app-password", sid: str = "Zx9sessionid123"):
        self.password = password
        self.sid = sid
        self.requests = []
        self.accept_auth = True
        self.reject_next = 0  # authenticated calls to answer with 401
        self.blocking = "enabled"
        self.summary = {
            "queries": {"total": 1000, "blocked": 250, "percent_blocked": 25.0},
            "gravity": {
                "domains_being_blocked": 123456,
                "last_update": int(FIXED_NOW.timestamp()) - 3600,
            },
        }
        self.top_domains = [
            {"domain": "ads.example.com", "count": 40},
            {"domain": "", "count": 30},
            {"domain": "tracker.example.net", "count": 20},
            {"domain": "telemetry.example.org", "count": 10},
        ]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/api/auth":
            if request.method == "DELETE":
                return httpx.Response(204)
            body = json.loads(request.content or b"{}")
            if not self.accept_auth or body.get("password") != self.password:
                return httpx.Response(401, json={"session": {
                    "valid": False, "sid": None, "message": "password incorrect"}})
            return httpx.Response(200, json={"session": {
                "valid": True, "sid": self.sid, "validity": 1800, "message": "correct password"}})

        if request.url.params.get("sid") != self.sid or self.reject_next > 0:
            self.reject_next = max(0, self.reject_next - 1)
            return httpx.Response(401, json={"error": {"key": "unauthorized"}})

        if request.method == "GET" and path == "/api/stats/summary":
            return httpx.Response(200, json=self.summary)
        if request.method == "GET" and path == "/api/info/version":
            return httpx.Response(200, json={"version": {
                "core": {"local": {"version": "v6.0.4"}},
                "ftl": {"local": {"version": "v6.1"}},
            }})
        if request.method == "GET" and path == "/api/stats/recent_blocked":
            return httpx.Response(200, json={"blocked": ["doubleclick.example.com"]})
        if request.method == "GET" and path == "/api/stats/top_domains":
            return httpx.Response(200, json={"domains": self.top_domains, "total_queries": 1000})
        if path == "/api/dns/blocking":
            if request.method == "POST":
                body = json.loads(request.content)
                self.blocking = "enabled" if body["blocking"] else "disabled"
                return httpx.Response(200, json={"blocking": self.blocking, "timer": body.get("timer")})
            return httpx.Response(200, json={"blocking": self.blocking, "timer": None})

        return httpx.Response(404, json={"error": {"key": "not_found"}})

    def authenticated_requests(self):
        return [r for r in self.requests if r.url.path != "/api/auth"]


class FakeAdGuard:
    """Minimal AdGuard Home control API"""

    def __init__(self, username: str = "admin", password: str = "hunter2"):
        self.expected_auth = "Basic " + base64.b64encode(
            f"{username}:{password}".encode("utf-8")).decode("ascii")
        self.requests = []
        self.protection_enabled = True
        self.status = {"version": "v0.107.52", "running": True}
        self.stats = {
            "num_dns_queries": 1000,
            "num_blocked_filtering": 250,
            "avg_processing_time": 0.012,
            "top_blocked_domains": [
                {"ads.example.com": 40},
                {" ": 35},
                {"tracker.example.net": 20},
                {"telemetry.example.org": 10},
            ],
        }
        self.filters = [
            {"enabled": True, "rules_count": 50000, "last_updated": "2026-10-19T10:00:00.123456789Z"},
            {"enabled": True, "rules_count": 1500, "last_updated": "2026-10-19T09:00:00Z"},
            {"enabled": False, "rules_count": 999, "last_updated": "2026-10-19T11:59:00Z"},
        ]
        self.dns_info = {"protection_enabled": True, "upstream_dns": ["9.9.9.9"], "ratelimit": 20}
        self.dns_config_posts = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.headers.get("Authorization") != self.expected_auth:
            return httpx.Response(401, text="Unauthorized")

        path = request.url.path
        if path == "/control/status":
            return httpx.Response(200, json=dict(self.status, protection_enabled=self.protection_enabled))
        if path == "/control/stats":
            return httpx.Response(200, json=self.stats)
        if path == "/control/filtering/status":
            return httpx.Response(200, json={"enabled": True, "filters": self.filters})
        if path == "/control/querylog":
            return httpx.Response(200, json={"data": [{"question": {"name": "ads.example.com", "type": "A"}}]})
        if path == "/control/dns_info":
            return httpx.Response(200, json=dict(self.dns_info, protection_enabled=self.protection_enabled))
        if path == "/control/dns_config" and request.method == "POST":
            body = json.loads(request.content)
            self.dns_config_posts.append(body)
            self.protection_enabled = body["protection_enabled"]
            return httpx.Response(200)

        return httpx.Response(404, text="Not Found")


def down_transport(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("Connection refused", request=request)


@pytest.fixture
def fixed_clock():
    """Clock frozen at FIXED_NOW"""
    return FixedClock()


@pytest.fixture
def fake_pihole():
    return FakePiHole()


@pytest.fixture
def fake_adguard():
    return FakeAdGuard()


@pytest.fixture
def pihole_config():
    return ConnectionConfig.for_pihole("pi.hole", 8080, "http", "app-password")


@pytest.fixture
def adguard_config():
    return ConnectionConfig.for_adguard_home("adguard.lan", 3000, "http", "admin", "hunter2")


@pytest.fixture
def pihole_handler(fake_pihole, pihole_config, fixed_clock):
    """Authenticated Pi-hole handler backed by FakePiHole"""
    http_client = HttpClient(transport=httpx.MockTransport(fake_pihole))
    handler = PiHoleHandler(pihole_config, http_client=http_client, clock=fixed_clock)
    yield handler
    http_client.close()


@pytest.fixture
def adguard_handler(fake_adguard, adguard_config, fixed_clock):
    """AdGuard Home handler backed by FakeAdGuard"""
    http_client = HttpClient(transport=httpx.MockTransport(fake_adguard))
    handler = AdGuardHomeHandler(adguard_config, http_client=http_client, clock=fixed_clock)
    yield handler
    http_client.close()


@pytest.fixture
def temp_config_file(tmp_path):
    """Create a temporary config file for testing"""
    config_content = """
dns1:
  platform: pihole
  host: 192.168.1.2
  port: 8080
  scheme: http
  secret: app-password
dns2:
  platform: AdGuard Home
  host: 192.168.1.3
  port: 3000
  username: admin
  secret: hunter2
refresh:
  status: 10
  fluid: 0
top_x: 8
http:
  verify_ssl: false
"""
    path = tmp_path / "config.yaml"
    path.write_text(config_content)
    return str(path)


@pytest.fixture
def down_http():
    """HttpClient whose every request fails with a connection error"""
    http_client = HttpClient(transport=httpx.MockTransport(down_transport))
    yield http_client
    http_client.close()


@pytest.fixture
def adguard_factory(fixed_clock):
    """Build (handler, fake) pairs for arbitrary AdGuard Home credentials"""
    clients = []

    def build(username: str, password: str, server_username=None, server_password=None):
        fake = FakeAdGuard(
            username if server_username is None else server_username,
            password if server_password is None else server_password,
        )
        http_client = HttpClient(transport=httpx.MockTransport(fake))
        clients.append(http_client)
        config = ConnectionConfig.for_adguard_home("adguard.lan", 3000, "http", username, password)
        return AdGuardHomeHandler(config, http_client=http_client, clock=fixed_clock), fake

    yield build
    for http_client in clients:
        http_client.close()
