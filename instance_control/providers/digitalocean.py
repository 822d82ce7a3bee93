"""
DigitalOcean Record Adapter
===========================

Normalizes DigitalOcean API v2 records as relayed by the console API.

DigitalOcean specifics:
- Sizes report disk in GB and transfer in TB (converted to MB / GB here)
- Plan classes come from the size description ("Basic", "CPU-Optimized", ...)
- Droplet addresses live under networks.v4 / networks.v6; rDNS is not editable
- Firewalls list attached droplet ids; the droplet id doubles as device id
"""

import ipaddress
from typing import Any, Dict, Optional

from .addressing import address_family, classify_address
from .base import (
    BackupKind,
    BackupRecord,
    Firewall,
    FirewallAttachment,
    Instance,
    InstanceStatus,
    NetworkAddress,
    Plan,
    Pricing,
    ProviderAdapter,
    Region,
    TypeClass,
    Visibility,
    parse_timestamp,
    string_tuple,
    to_float,
    to_int,
    to_str,
)
from .registry import register_adapter

REGION_COUNTRIES = {
    "nyc1": "United States",
    "nyc2": "United States",
    "nyc3": "United States",
    "sfo1": "United States",
    "sfo2": "United States",
    "sfo3": "United States",
    "sea1": "United States",
    "ams2": "Netherlands",
    "ams3": "Netherlands",
    "sgp1": "Singapore",
    "lon1": "United Kingdom",
    "fra1": "Germany",
    "fra2": "Germany",
    "tor1": "Canada",
    "blr1": "India",
    "syd1": "Australia",
    "mad1": "Spain",
    "bom1": "India",
}


def _netmask_prefix(netmask: Any) -> Optional[int]:
    if isinstance(netmask, int) and not isinstance(netmask, bool):
        return netmask
    text = to_str(netmask)
    if not text:
        return None
    if text.isdigit():
        return int(text)
    try:
        return ipaddress.IPv4Network(f"0.0.0.0/{text}").prefixlen
    except ValueError:
        return None


def _slug_of(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return to_str(value.get("slug")) or to_str(value.get("name")) or to_str(value.get("id"))
    return to_str(value)


@register_adapter
class DigitalOceanAdapter(ProviderAdapter):
    """Adapter for DigitalOcean records."""

    PROVIDER_ID = "digitalocean"
    PROVIDER_NAME = "DigitalOcean"

    TYPE_CLASS_FALLBACKS = {
        "basic": TypeClass.STANDARD,
        "general purpose": TypeClass.STANDARD,
        "cpu-optimized": TypeClass.CPU,
        "memory-optimized": TypeClass.MEMORY,
        "storage-optimized": TypeClass.STORAGE,
    }

    STATUS_MAP = {
        "new": InstanceStatus.PROVISIONING,
        "active": InstanceStatus.RUNNING,
        "off": InstanceStatus.STOPPED,
        "archive": InstanceStatus.STOPPED,
    }

    def _normalize_plan(self, raw: Dict[str, Any]) -> Plan:
        slug = to_str(raw.get("slug")) or to_str(raw.get("id"))
        if not slug:
            raise ValueError("missing slug")

        disk_gb = to_float(raw.get("disk")) or 0.0
        transfer_tb = to_float(raw.get("transfer")) or 0.0
        description = to_str(raw.get("description"))

        return Plan(
            id=slug,
            label=description or slug,
            provider=self.kind,
            vcpus=to_int(raw.get("vcpus")) or 0,
            memory_mb=to_int(raw.get("memory")) or 0,
            disk_mb=int(disk_gb * 1024),
            transfer_gb=transfer_tb * 1024,
            pricing=Pricing(
                hourly=to_float(raw.get("price_hourly")),
                monthly=to_float(raw.get("price_monthly")),
            ),
            type_class=self.resolve_type_class(raw.get("type_class") or description),
            regions=string_tuple(raw.get("regions")),
        )

    def _normalize_region(self, raw: Dict[str, Any]) -> Region:
        slug = to_str(raw.get("slug")) or to_str(raw.get("id"))
        if not slug:
            raise ValueError("missing slug")

        available = raw.get("available")
        return Region(
            id=slug,
            label=to_str(raw.get("name")) or slug,
            provider=self.kind,
            country=REGION_COUNTRIES.get(slug.lower()),
            available=available if isinstance(available, bool) else True,
            capabilities=string_tuple(raw.get("features")),
        )

    def _normalize_instance(self, raw: Dict[str, Any]) -> Instance:
        droplet_id = to_str(raw.get("id"))
        if not droplet_id:
            raise ValueError("missing id")

        networks = raw.get("networks") or {}
        ipv4 = self._addresses(networks.get("v4"))
        ipv6 = self._addresses(networks.get("v6"))

        size = raw.get("size")
        plan_id = to_str(raw.get("size_slug")) or _slug_of(size)

        return Instance(
            id=droplet_id,
            label=to_str(raw.get("name")) or droplet_id,
            status=self.map_status(raw.get("status")),
            provider=self.kind,
            region=_slug_of(raw.get("region")),
            plan_id=plan_id,
            image=_slug_of(raw.get("image")),
            ipv4=ipv4,
            ipv6=ipv6,
            created_at=parse_timestamp(raw.get("created_at")),
            tags=string_tuple(raw.get("tags")),
        )

    @staticmethod
    def _addresses(entries: Any):
        """Public addresses first, then private, preserving upstream order."""
        if not isinstance(entries, list):
            return ()
        valid = [e for e in entries if isinstance(e, dict) and to_str(e.get("ip_address"))]
        ordered = sorted(valid, key=lambda e: 0 if e.get("type") == "public" else 1)
        return tuple(e["ip_address"].strip() for e in ordered)

    def _normalize_backup(self, raw: Dict[str, Any]) -> BackupRecord:
        backup_id = to_str(raw.get("id"))
        if not backup_id:
            raise ValueError("missing id")

        size_mb = to_float(raw.get("totalSizeMb"))
        if size_mb is None:
            size_mb = (to_float(raw.get("size_gigabytes")) or 0.0) * 1024

        available = raw.get("available")
        kind = BackupKind.MANUAL if to_str(raw.get("type")) == "snapshot" else BackupKind.AUTOMATIC
        return BackupRecord(
            id=backup_id,
            kind=kind,
            status=to_str(raw.get("status")) or "available",
            label=to_str(raw.get("name")) or to_str(raw.get("label")),
            created_at=parse_timestamp(raw.get("created_at") or raw.get("created")),
            finished_at=parse_timestamp(raw.get("finished")),
            size_mb=size_mb,
            available=available if isinstance(available, bool) else True,
        )

    def _normalize_network(self, raw: Dict[str, Any]) -> NetworkAddress:
        address = to_str(raw.get("ip_address")) or to_str(raw.get("address"))
        family = address_family(address)
        if family is None:
            raise ValueError(f"invalid address {raw.get('ip_address')!r}")

        kind = (to_str(raw.get("type")) or "").lower()
        if kind == "public":
            visibility = Visibility.PUBLIC
        elif kind == "private":
            visibility = Visibility.PRIVATE
        else:
            visibility = classify_address(address)

        # Droplet rDNS follows the droplet name unless the console says otherwise
        editable = raw.get("rdnsEditable")

        return NetworkAddress(
            address=address,
            family=family,
            visibility=visibility,
            assignment=to_str(raw.get("assignment")) or kind or None,
            rdns=to_str(raw.get("rdns")),
            editable=editable if isinstance(editable, bool) else False,
            prefix=_netmask_prefix(raw.get("netmask", raw.get("prefix"))),
            gateway=to_str(raw.get("gateway")),
        )

    def _normalize_firewall(self, raw: Dict[str, Any], instance_id: Optional[str]) -> Firewall:
        firewall_id = to_str(raw.get("id"))
        if not firewall_id:
            raise ValueError("missing id")

        attachment = self._attachment_from_summary(raw)
        if attachment is None and instance_id is not None:
            droplet_ids = [str(d) for d in raw.get("droplet_ids") or []]
            if str(instance_id) in droplet_ids:
                attachment = FirewallAttachment(
                    device_id=str(instance_id),
                    entity_id=str(instance_id),
                    entity_type="droplet",
                )

        rules = raw.get("rules") or {}
        inbound = raw.get("inbound_rules") or rules.get("inbound") or []
        outbound = raw.get("outbound_rules") or rules.get("outbound") or []

        return Firewall(
            id=firewall_id,
            label=to_str(raw.get("name")) or to_str(raw.get("label")) or firewall_id,
            status=to_str(raw.get("status")),
            inbound=tuple(r for r in inbound if isinstance(r, dict)),
            outbound=tuple(r for r in outbound if isinstance(r, dict)),
            tags=string_tuple(raw.get("tags")),
            attachment=attachment,
        )
