"""Tests for the command line entry point"""

import sys

import pytest

from blockerwatch import cli
from blockerwatch.integrations.models import BlockedDomain, BlockingStatus, NormalizedStats
from blockerwatch.scheduler import (
    ApplianceLiveness,
    LivenessSnapshot,
    StatusSnapshot,
    TopBlockedSnapshot,
    TrendSnapshot,
)


class TestFormatSnapshot:
    """Tests for console formatting"""

    def test_status(self):
        """Test status line"""
        snapshot = StatusSnapshot(active=True, total_queries=10, blocked_queries=5,
                                  accepted_queries=5, percent_blocked=50.0, blocklist_size=7)
        assert cli.format_snapshot("status", snapshot) == (
            "[status] total=10 blocked=5 accepted=5 (50.0%) blocklist=7"
        )

    def test_inactive_status(self):
        """Test inactive status line"""
        assert cli.format_snapshot("status", StatusSnapshot(active=False)) == "[status] inactive"

    def test_trend(self):
        """Test trend line"""
        snapshot = TrendSnapshot(percent_blocked=12.345, gravity_text="Gravity: 2m ago")
        assert cli.format_snapshot("fluid", snapshot) == "[fluid] 12.3% blocked, Gravity: 2m ago"

    def test_liveness_down(self):
        """Test no reachable appliance"""
        snapshot = LivenessSnapshot(appliances=(ApplianceLiveness("pihole", "pi.hole:80", False),))
        assert cli.format_snapshot("active", snapshot) == "[active] No active appliance (API version: N/A)"

    def test_top(self):
        """Test top blocked line"""
        snapshot = TopBlockedSnapshot(domains=(BlockedDomain("a.example", 3),))
        assert cli.format_snapshot("top_x", snapshot) == "[top_x] a.example (3)"


class TestStatsDocument:
    """Tests for the stats command output"""

    def test_blocking_state_filled_in(self):
        """Test status and blocking.enabled agree"""
        stats = NormalizedStats(source="pihole", host="pi.hole", total_queries=10, blocked_queries=2)
        document = cli.stats_document(stats, BlockingStatus("pihole", "pi.hole", False))
        assert document["status"] == "disabled"
        assert document["blocking"]["enabled"] is False

    def test_unknown_without_status(self):
        """Test a failed status call leaves the state unknown"""
        stats = NormalizedStats(source="pihole", host="pi.hole")
        document = cli.stats_document(stats, None)
        assert document["status"] == "unknown"
        assert document["blocking"]["enabled"] is None


class TestMain:
    """Tests for argument handling"""

    def test_no_command(self, monkeypatch):
        """Test running without a command prints help and exits 1"""
        monkeypatch.setattr(sys, "argv", ["blockerwatch"])
        with pytest.raises(SystemExit) as exc_info:
            cli.main()
        assert exc_info.value.code == 1

    def test_missing_config(self, monkeypatch, tmp_path):
        """Test a config without appliances exits 1"""
        monkeypatch.setattr(sys, "argv", ["blockerwatch", "--config", str(tmp_path / "none.yaml"), "stats"])
        with pytest.raises(SystemExit) as exc_info:
            cli.main()
        assert exc_info.value.code == 1
