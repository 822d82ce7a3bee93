"""
Instance State Machine
======================

Canonical lifecycle rules shared by every provider:
- Which states are stable and which are transitional
- Progress estimation when the provider reports none
- Which power actions are legal from which state
- The optimistic status each action moves an instance into
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from .providers.base import InstanceStatus

STABLE_STATUSES = frozenset({InstanceStatus.RUNNING, InstanceStatus.STOPPED})

# Fixed progress shown for transitional states with no better signal
HEURISTIC_PROGRESS = {
    InstanceStatus.REBOOTING: 60.0,
    InstanceStatus.RESTORING: 40.0,
    InstanceStatus.BACKING_UP: 70.0,
}

PROVISIONING_CAP = 90.0
PROVISIONING_UNKNOWN_START = 25.0
DEFAULT_PROVISIONING_ESTIMATE_SECONDS = 300.0


class PowerAction(Enum):
    BOOT = "boot"
    SHUTDOWN = "shutdown"
    REBOOT = "reboot"


LEGAL_FROM = {
    PowerAction.BOOT: frozenset({InstanceStatus.STOPPED}),
    PowerAction.SHUTDOWN: frozenset({InstanceStatus.RUNNING}),
    PowerAction.REBOOT: frozenset({InstanceStatus.RUNNING, InstanceStatus.REBOOTING}),
}

OPTIMISTIC_STATUS = {
    "boot": InstanceStatus.PROVISIONING,
    "shutdown": InstanceStatus.STOPPED,
    "reboot": InstanceStatus.REBOOTING,
    "restore": InstanceStatus.RESTORING,
    "snapshot": InstanceStatus.BACKING_UP,
}


def is_stable(status: InstanceStatus) -> bool:
    return status in STABLE_STATUSES


def is_transitional(status: InstanceStatus) -> bool:
    """Transitional states are the in-flight ones; error/unknown are neither."""
    return status not in STABLE_STATUSES and status not in (InstanceStatus.ERROR, InstanceStatus.UNKNOWN)


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def _elapsed_seconds(since: datetime, now: Optional[datetime]) -> float:
    now = now or datetime.now(timezone.utc)
    if since.tzinfo is None:
        since = since.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    # Clock skew can put the creation time in the future
    return max(0.0, (now - since).total_seconds())


def heuristic_progress(
    status: InstanceStatus,
    created_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
    provisioning_estimate: float = DEFAULT_PROVISIONING_ESTIMATE_SECONDS,
) -> Optional[float]:
    """
    Estimate progress for a transitional state.

    Provisioning grows linearly with time since creation and is capped at 90
    so it never claims completion; with no creation time it shows 25.
    Stable, error and unknown states have no progress.
    """
    if status == InstanceStatus.PROVISIONING:
        if created_at is None:
            return PROVISIONING_UNKNOWN_START
        estimate = provisioning_estimate if provisioning_estimate > 0 else DEFAULT_PROVISIONING_ESTIMATE_SECONDS
        elapsed = _elapsed_seconds(created_at, now)
        return _clamp(min(PROVISIONING_CAP, elapsed / estimate * 100.0))
    return HEURISTIC_PROGRESS.get(status)


def estimate_progress(
    status: InstanceStatus,
    provider_percent: Optional[float] = None,
    created_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
    provisioning_estimate: float = DEFAULT_PROVISIONING_ESTIMATE_SECONDS,
) -> Optional[float]:
    """
    Progress (0-100) to show for an instance, or None when there is none.

    A provider-reported percentage below 100 is authoritative. A reported
    100 on a stable instance means the work is done; on a transitional one
    the report is stale and the heuristic takes over.
    """
    if provider_percent is not None:
        if provider_percent < 100:
            return _clamp(provider_percent)
        if is_stable(status):
            return None

    return heuristic_progress(status, created_at, now, provisioning_estimate)


def is_action_legal(action: PowerAction, status: InstanceStatus) -> bool:
    return status in LEGAL_FROM[action]


def optimistic_status(action: str) -> Optional[InstanceStatus]:
    """Status to show immediately after dispatching ``action``, if it changes one."""
    return OPTIMISTIC_STATUS.get(action)
