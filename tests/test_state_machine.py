"""
Tests for the Instance State Machine
====================================

Tests progress estimation and power action legality.
"""

from datetime import datetime, timedelta, timezone

import pytest

from instance_control.providers.base import InstanceStatus
from instance_control.state_machine import (
    PowerAction,
    estimate_progress,
    heuristic_progress,
    is_action_legal,
    is_stable,
    is_transitional,
    optimistic_status,
)

CREATED = datetime(2024, 1, 1, tzinfo=timezone.utc)


class TestProvisioningProgress:
    """Provisioning progress grows with time and never claims completion."""

    def test_linear_growth(self):
        now = CREATED + timedelta(seconds=150)
        assert heuristic_progress(InstanceStatus.PROVISIONING, CREATED, now) == 50.0

    def test_non_decreasing_and_capped(self):
        last = 0.0
        for seconds in range(0, 1200, 15):
            progress = heuristic_progress(InstanceStatus.PROVISIONING, CREATED, CREATED + timedelta(seconds=seconds))
            assert last <= progress <= 90.0
            last = progress
        assert last == 90.0

    def test_unknown_creation_time(self):
        assert heuristic_progress(InstanceStatus.PROVISIONING) == 25.0

    def test_future_creation_time(self):
        """Clock skew never produces negative progress."""
        now = CREATED - timedelta(minutes=5)
        assert heuristic_progress(InstanceStatus.PROVISIONING, CREATED, now) == 0.0

    def test_naive_creation_time(self):
        naive = datetime(2024, 1, 1)
        now = CREATED + timedelta(seconds=60)
        assert heuristic_progress(InstanceStatus.PROVISIONING, naive, now) == 20.0

    def test_custom_estimate(self):
        now = CREATED + timedelta(seconds=60)
        assert heuristic_progress(InstanceStatus.PROVISIONING, CREATED, now, provisioning_estimate=120) == 50.0


class TestHeuristics:

    @pytest.mark.parametrize("status,expected", [
        (InstanceStatus.REBOOTING, 60.0),
        (InstanceStatus.RESTORING, 40.0),
        (InstanceStatus.BACKING_UP, 70.0),
        (InstanceStatus.RUNNING, None),
        (InstanceStatus.STOPPED, None),
        (InstanceStatus.ERROR, None),
        (InstanceStatus.UNKNOWN, None),
    ])
    def test_fixed_values(self, status, expected):
        assert heuristic_progress(status) == expected


class TestEstimateProgress:

    def test_provider_percent_authoritative(self):
        assert estimate_progress(InstanceStatus.REBOOTING, provider_percent=45) == 45

    def test_provider_percent_clamped(self):
        assert estimate_progress(InstanceStatus.RESTORING, provider_percent=-5) == 0.0

    def test_complete_on_stable(self):
        """A finished event on a running instance means no progress."""
        assert estimate_progress(InstanceStatus.RUNNING, provider_percent=100) is None

    def test_stale_complete_on_transitional(self):
        """A stale 100% during a reboot falls back to the heuristic."""
        assert estimate_progress(InstanceStatus.REBOOTING, provider_percent=100) == 60.0

    def test_bounds(self):
        for status in InstanceStatus:
            for percent in (None, -10, 0, 50, 99.9, 100, 250):
                progress = estimate_progress(status, percent, CREATED, CREATED + timedelta(hours=1))
                assert progress is None or 0.0 <= progress <= 100.0


class TestLegality:

    @pytest.mark.parametrize("action,status,legal", [
        (PowerAction.BOOT, InstanceStatus.STOPPED, True),
        (PowerAction.BOOT, InstanceStatus.RUNNING, False),
        (PowerAction.SHUTDOWN, InstanceStatus.RUNNING, True),
        (PowerAction.SHUTDOWN, InstanceStatus.STOPPED, False),
        (PowerAction.REBOOT, InstanceStatus.RUNNING, True),
        (PowerAction.REBOOT, InstanceStatus.REBOOTING, True),
        (PowerAction.REBOOT, InstanceStatus.STOPPED, False),
        (PowerAction.REBOOT, InstanceStatus.PROVISIONING, False),
        (PowerAction.BOOT, InstanceStatus.UNKNOWN, False),
    ])
    def test_table(self, action, status, legal):
        assert is_action_legal(action, status) is legal

    def test_optimistic_status(self):
        assert optimistic_status("boot") == InstanceStatus.PROVISIONING
        assert optimistic_status("shutdown") == InstanceStatus.STOPPED
        assert optimistic_status("reboot") == InstanceStatus.REBOOTING
        assert optimistic_status("restore") == InstanceStatus.RESTORING
        assert optimistic_status("snapshot") == InstanceStatus.BACKING_UP
        assert optimistic_status("enable") is None

    def test_stability(self):
        assert is_stable(InstanceStatus.RUNNING)
        assert is_transitional(InstanceStatus.REBOOTING)
        assert not is_transitional(InstanceStatus.ERROR)
        assert not is_stable(InstanceStatus.UNKNOWN)
