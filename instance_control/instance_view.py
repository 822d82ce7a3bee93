"""
Instance View
=============

Builds the canonical per-instance view from a ``GET /api/vps/:id`` payload.

The payload mixes console fields (id, label, plan, transfer) with provider
telemetry (addresses, backups, firewalls, events). Provider records go
through the provider's adapter; a bad record is dropped, never the view.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .config import ConsoleConfig
from .providers import (
    AdapterRegistry,
    BackupRecord,
    BackupSchedule,
    Firewall,
    Instance,
    NetworkAddress,
    Plan,
    Pricing,
    ProviderKind,
    RecordKind,
    classify_address,
)
from .providers.addressing import address_family, strip_prefix
from .providers.base import (
    MALFORMED_RECORD_ERRORS,
    InstanceStatus,
    parse_timestamp,
    string_tuple,
    to_float,
    to_int,
    to_str,
)
from .services.backups import BackupAccounting, TransferSummary, normalize_schedule
from .services.networking import rdns_editable
from .state_machine import estimate_progress

logger = logging.getLogger(__name__)

IPV4_BUCKETS = ("public", "private", "shared", "reserved")
IPV6_SINGLE_BUCKETS = (("slaac", "slaac"), ("linkLocal", "link_local"), ("link_local", "link_local"))
IPV6_RANGE_BUCKETS = (("global", "global"), ("ranges", "range"), ("pools", "pool"))

# Event statuses that mean the provider is still working
ACTIVE_EVENT_STATUSES = frozenset({"scheduled", "started"})


@dataclass(frozen=True)
class ActivityEvent:
    id: str
    action: str
    status: Optional[str] = None
    message: Optional[str] = None
    created_at: Optional[datetime] = None
    percent_complete: Optional[float] = None


@dataclass(frozen=True)
class MetricSummary:
    average: float
    peak: float
    last: float


@dataclass(frozen=True)
class BackupsInfo:
    enabled: bool = False
    available: bool = False
    schedule: BackupSchedule = field(default_factory=BackupSchedule)
    last_successful: Optional[datetime] = None
    automatic: Tuple[BackupRecord, ...] = ()
    snapshot: Optional[BackupRecord] = None
    snapshot_in_progress: Optional[BackupRecord] = None


@dataclass(frozen=True)
class InstanceView:
    """Everything known about one instance, as one immutable record."""
    instance: Instance
    progress: Optional[float] = None
    region_label: Optional[str] = None
    provider_instance_id: Optional[str] = None
    plan: Optional[Plan] = None
    pricing: Pricing = field(default_factory=Pricing)
    backup_pricing: Pricing = field(default_factory=Pricing)
    backups: BackupsInfo = field(default_factory=BackupsInfo)
    addresses: Tuple[NetworkAddress, ...] = ()
    firewalls: Tuple[Firewall, ...] = ()
    firewall_options: Tuple[Firewall, ...] = ()
    activity: Tuple[ActivityEvent, ...] = ()
    transfer: Optional[TransferSummary] = None
    metrics: Dict[str, MetricSummary] = field(default_factory=dict)
    rdns_editable: bool = False

    @property
    def id(self) -> str:
        return self.instance.id

    @property
    def status(self) -> InstanceStatus:
        return self.instance.status


def summarize_series(points: Any) -> Optional[MetricSummary]:
    """Average, peak and last value of a metric series, ignoring non-finite points."""
    values = []
    for point in points or []:
        if isinstance(point, dict):
            value = point.get("value")
        elif isinstance(point, (list, tuple)) and len(point) >= 2:
            value = point[1]
        else:
            continue
        number = to_float(value)
        if number is not None and math.isfinite(number):
            values.append(number)

    if not values:
        return None
    return MetricSummary(
        average=sum(values) / len(values),
        peak=max(values),
        last=values[-1],
    )


def _metric_summaries(metrics: Any) -> Dict[str, MetricSummary]:
    summaries = {}
    if not isinstance(metrics, dict):
        return summaries

    def visit(prefix: str, node: Any) -> None:
        if not isinstance(node, dict):
            return
        if "series" in node:
            summary = summarize_series(node.get("series"))
            if summary is not None:
                summaries[prefix] = summary
            return
        for key, child in node.items():
            if key != "timeframe":
                visit(f"{prefix}.{key}" if prefix else key, child)

    visit("", metrics)
    return summaries


def _parse_event(raw: Any) -> Optional[ActivityEvent]:
    if not isinstance(raw, dict):
        return None
    event_id = to_str(raw.get("id"))
    if event_id is None:
        return None
    percent = raw.get("percentComplete", raw.get("percent_complete"))
    return ActivityEvent(
        id=event_id,
        action=to_str(raw.get("action")) or "unknown",
        status=to_str(raw.get("status")),
        message=to_str(raw.get("message")),
        created_at=parse_timestamp(raw.get("created")),
        percent_complete=to_float(percent),
    )


def _provider_kind(detail: Dict[str, Any]) -> ProviderKind:
    value = to_str(detail.get("providerType")) or to_str(detail.get("provider_type")) or "linode"
    try:
        return ProviderKind(value.lower())
    except ValueError:
        logger.warning(f"Unknown provider type '{value}', reading instance as linode")
        return ProviderKind.LINODE


class InstanceViewBuilder:
    """Turns detail payloads into InstanceView records."""

    def __init__(self, config: Optional[ConsoleConfig] = None):
        self.config = config or ConsoleConfig()
        self.accounting = BackupAccounting(self.config.billing)

    def build(self, payload: Dict[str, Any], now: Optional[datetime] = None) -> InstanceView:
        """
        Build a view from a detail response.

        Args:
            payload: ``{"instance": {...}}`` or the bare instance object
            now: Reference time for progress estimation (defaults to now)

        Raises:
            ValueError: If the payload has no instance id or a section of it
                cannot be read
        """
        try:
            return self._build(payload, now)
        except ValueError:
            raise
        except MALFORMED_RECORD_ERRORS as e:
            raise ValueError(f"Malformed instance detail: {type(e).__name__}: {e}") from e

    def _build(self, payload: Dict[str, Any], now: Optional[datetime]) -> InstanceView:
        detail = payload.get("instance", payload) if isinstance(payload, dict) else None
        if not isinstance(detail, dict) or not to_str(detail.get("id")):
            raise ValueError("Instance detail payload has no id")

        kind = _provider_kind(detail)
        adapter = AdapterRegistry.get(kind)
        telemetry = detail.get("provider") if isinstance(detail.get("provider"), dict) else {}
        provider_instance_id = to_str(detail.get("providerInstanceId")) or to_str(telemetry.get("id"))

        instance = self._instance(detail, telemetry, kind, adapter)
        activity = tuple(e for e in (_parse_event(raw) for raw in detail.get("activity") or []) if e)
        plan = self._plan(detail.get("plan"), kind)
        pricing = self.accounting.complete_pricing(plan.pricing if plan else None)
        addresses = self._addresses(detail.get("networking"), instance, adapter)

        transfer = None
        raw_transfer = detail.get("transfer")
        if isinstance(raw_transfer, dict):
            account = raw_transfer.get("account") if isinstance(raw_transfer.get("account"), dict) else {}
            transfer = self.accounting.transfer_summary(
                raw_transfer.get("usedGb"),
                raw_transfer.get("quotaGb"),
                account.get("usedGb"),
                account.get("quotaGb"),
                raw_transfer.get("billableGb"),
            )

        return InstanceView(
            instance=instance,
            progress=estimate_progress(
                instance.status,
                provider_percent=self._provider_percent(activity),
                created_at=instance.created_at,
                now=now,
                provisioning_estimate=self.config.progress.provisioning_estimate_seconds,
            ),
            region_label=to_str(detail.get("regionLabel")),
            provider_instance_id=provider_instance_id,
            plan=plan,
            pricing=pricing,
            backup_pricing=self.accounting.backup_pricing(pricing),
            backups=self._backups(detail.get("backups"), adapter),
            addresses=addresses,
            firewalls=tuple(adapter.normalize_many(
                RecordKind.FIREWALL, detail.get("firewalls") or [], instance_id=provider_instance_id
            )),
            firewall_options=tuple(adapter.normalize_many(
                RecordKind.FIREWALL, detail.get("firewallOptions") or []
            )),
            activity=activity,
            transfer=transfer,
            metrics=_metric_summaries(detail.get("metrics")),
            rdns_editable=rdns_editable(addresses),
        )

    # =========================================
    # SECTIONS
    # =========================================

    def _instance(self, detail, telemetry, kind, adapter) -> Instance:
        status_value = detail.get("status") or telemetry.get("status")

        ipv4 = string_tuple(telemetry.get("ipv4"))
        fallback_ipv4 = to_str(detail.get("ipAddress"))
        if not ipv4 and fallback_ipv4:
            ipv4 = (fallback_ipv4,)
        raw_ipv6 = to_str(telemetry.get("ipv6"))
        ipv6 = (strip_prefix(raw_ipv6),) if raw_ipv6 else ()

        plan = detail.get("plan") if isinstance(detail.get("plan"), dict) else {}
        return Instance(
            id=str(detail["id"]),
            label=to_str(detail.get("label")) or str(detail["id"]),
            status=adapter.map_status(status_value),
            provider=kind,
            region=to_str(detail.get("region")) or to_str(telemetry.get("region")),
            plan_id=to_str(plan.get("id")) or to_str(plan.get("providerPlanId")),
            image=to_str(detail.get("image")) or to_str(telemetry.get("image")),
            ipv4=ipv4,
            ipv6=ipv6,
            created_at=parse_timestamp(detail.get("createdAt") or telemetry.get("created")),
            updated_at=parse_timestamp(detail.get("updatedAt") or telemetry.get("updated")),
        )

    @staticmethod
    def _provider_percent(activity: Tuple[ActivityEvent, ...]) -> Optional[float]:
        """Completion reported by the newest in-flight provider event."""
        for event in activity:
            if event.status in ACTIVE_EVENT_STATUSES and event.percent_complete is not None:
                return event.percent_complete
        return None

    def _plan(self, raw: Any, kind: ProviderKind) -> Optional[Plan]:
        if not isinstance(raw, dict):
            return None
        plan_id = to_str(raw.get("id")) or to_str(raw.get("providerPlanId"))
        if plan_id is None:
            return None

        specs = raw.get("specs") or {}
        pricing = raw.get("pricing") or {}
        return Plan(
            id=plan_id,
            label=to_str(raw.get("name")) or plan_id,
            provider=kind,
            vcpus=to_int(specs.get("vcpus")) or 0,
            memory_mb=to_int(specs.get("memory")) or 0,
            disk_mb=to_int(specs.get("disk")) or 0,
            transfer_gb=to_float(specs.get("transfer")) or 0.0,
            pricing=Pricing(
                hourly=to_float(pricing.get("hourly")),
                monthly=to_float(pricing.get("monthly")),
                currency=to_str(pricing.get("currency")) or "USD",
            ),
        )

    def _backups(self, raw: Any, adapter) -> BackupsInfo:
        if not isinstance(raw, dict):
            return BackupsInfo()

        schedule = raw.get("schedule") if isinstance(raw.get("schedule"), dict) else {}

        def one(record: Any) -> Optional[BackupRecord]:
            records = adapter.normalize_many(RecordKind.BACKUP, [record] if record else [])
            return records[0] if records else None

        return BackupsInfo(
            enabled=bool(raw.get("enabled")),
            available=bool(raw.get("available")),
            schedule=normalize_schedule(schedule.get("day"), schedule.get("window")),
            last_successful=parse_timestamp(raw.get("lastSuccessful")),
            automatic=tuple(adapter.normalize_many(RecordKind.BACKUP, raw.get("automatic") or [])),
            snapshot=one(raw.get("snapshot")),
            snapshot_in_progress=one(raw.get("snapshotInProgress")),
        )

    def _addresses(self, networking: Any, instance: Instance, adapter) -> Tuple[NetworkAddress, ...]:
        if not isinstance(networking, dict):
            return self._fallback_addresses(instance)

        entries: List[Dict[str, Any]] = []
        ipv4 = networking.get("ipv4") if isinstance(networking.get("ipv4"), dict) else {}
        for bucket in IPV4_BUCKETS:
            for entry in ipv4.get(bucket) or []:
                if isinstance(entry, dict):
                    entries.append(dict(entry, assignment=bucket))

        ipv6 = networking.get("ipv6") if isinstance(networking.get("ipv6"), dict) else {}
        for key, assignment in IPV6_SINGLE_BUCKETS:
            if isinstance(ipv6.get(key), dict):
                entries.append(dict(ipv6[key], assignment=assignment))
        for key, assignment in IPV6_RANGE_BUCKETS:
            for entry in ipv6.get(key) or []:
                if isinstance(entry, dict):
                    address = entry.get("address") or entry.get("range")
                    entries.append(dict(entry, address=address, assignment=assignment, rdnsEditable=False))

        return tuple(adapter.normalize_many(RecordKind.NETWORK, entries))

    @staticmethod
    def _fallback_addresses(instance: Instance) -> Tuple[NetworkAddress, ...]:
        """Addresses from the instance record alone, classified by range."""
        addresses = []
        for address in instance.ipv4 + instance.ipv6:
            family = address_family(address)
            if family is None:
                continue
            addresses.append(NetworkAddress(
                address=address,
                family=family,
                visibility=classify_address(address),
            ))
        return tuple(addresses)
