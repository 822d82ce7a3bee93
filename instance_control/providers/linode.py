"""
Linode (Akamai) Record Adapter
==============================

Normalizes Linode API v4 records as relayed by the console API.

Linode specifics:
- Memory and disk are already in MB, transfer in GB
- Plan classes: nanode, standard, dedicated, highmem, premium, gpu
- IPv6 is reported as a single "address/prefix" string
- Firewall attachments come as a device list that must be matched to the instance
"""

from typing import Any, Dict, Optional

from .addressing import address_family, classify_address, strip_prefix
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


def _require_id(raw: Dict[str, Any], key: str = "id") -> str:
    identifier = to_str(raw.get(key))
    if not identifier:
        raise ValueError(f"missing {key}")
    return identifier


@register_adapter
class LinodeAdapter(ProviderAdapter):
    """Adapter for Linode records."""

    PROVIDER_ID = "linode"
    PROVIDER_NAME = "Linode (Akamai)"

    TYPE_CLASS_FALLBACKS = {
        "nanode": TypeClass.STANDARD,
        "standard": TypeClass.STANDARD,
        "dedicated": TypeClass.CPU,
        "highmem": TypeClass.MEMORY,
    }

    STATUS_MAP = {
        "running": InstanceStatus.RUNNING,
        "offline": InstanceStatus.STOPPED,
        "stopped": InstanceStatus.STOPPED,
        "booting": InstanceStatus.PROVISIONING,
        "rebooting": InstanceStatus.REBOOTING,
        "shutting_down": InstanceStatus.STOPPED,
        "provisioning": InstanceStatus.PROVISIONING,
        "migrating": InstanceStatus.PROVISIONING,
        "rebuilding": InstanceStatus.PROVISIONING,
        "cloning": InstanceStatus.PROVISIONING,
        "resizing": InstanceStatus.PROVISIONING,
        "restoring": InstanceStatus.RESTORING,
        "deleting": InstanceStatus.ERROR,
        "busy": InstanceStatus.UNKNOWN,
    }

    def _normalize_plan(self, raw: Dict[str, Any]) -> Plan:
        plan_id = _require_id(raw)
        price = raw.get("price") or {}

        backup_pricing = None
        backup_price = ((raw.get("addons") or {}).get("backups") or {}).get("price") or {}
        if to_float(backup_price.get("hourly")) is not None or to_float(backup_price.get("monthly")) is not None:
            backup_pricing = Pricing(
                hourly=to_float(backup_price.get("hourly")),
                monthly=to_float(backup_price.get("monthly")),
            )

        return Plan(
            id=plan_id,
            label=to_str(raw.get("label")) or plan_id,
            provider=self.kind,
            vcpus=to_int(raw.get("vcpus")) or 0,
            memory_mb=to_int(raw.get("memory")) or 0,
            disk_mb=to_int(raw.get("disk")) or 0,
            transfer_gb=to_float(raw.get("transfer")) or 0.0,
            pricing=Pricing(
                hourly=to_float(price.get("hourly")),
                monthly=to_float(price.get("monthly")),
            ),
            type_class=self.resolve_type_class(raw.get("type_class")),
            backup_pricing=backup_pricing,
            regions=string_tuple(raw.get("regions")),
        )

    def _normalize_region(self, raw: Dict[str, Any]) -> Region:
        region_id = _require_id(raw)
        country = to_str(raw.get("country"))
        return Region(
            id=region_id,
            label=to_str(raw.get("label")) or region_id,
            provider=self.kind,
            country=country.upper() if country else None,
            available=(to_str(raw.get("status")) or "ok") == "ok",
            capabilities=string_tuple(raw.get("capabilities")),
        )

    def _normalize_instance(self, raw: Dict[str, Any]) -> Instance:
        instance_id = _require_id(raw)

        ipv6 = ()
        if to_str(raw.get("ipv6")):
            ipv6 = (strip_prefix(raw["ipv6"]),)

        return Instance(
            id=instance_id,
            label=to_str(raw.get("label")) or instance_id,
            status=self.map_status(raw.get("status")),
            provider=self.kind,
            region=to_str(raw.get("region")),
            plan_id=to_str(raw.get("type")),
            image=to_str(raw.get("image")),
            ipv4=string_tuple(raw.get("ipv4")),
            ipv6=ipv6,
            created_at=parse_timestamp(raw.get("created")),
            updated_at=parse_timestamp(raw.get("updated")),
            tags=string_tuple(raw.get("tags")),
        )

    def _normalize_backup(self, raw: Dict[str, Any]) -> BackupRecord:
        backup_id = _require_id(raw)
        status = to_str(raw.get("status"))

        size_mb = to_float(raw.get("totalSizeMb"))
        if size_mb is None:
            size_mb = sum(to_float(disk.get("size")) or 0.0 for disk in raw.get("disks") or [] if isinstance(disk, dict))

        available = raw.get("available")
        if not isinstance(available, bool):
            available = status == "successful"

        return BackupRecord(
            id=backup_id,
            kind=BackupKind.AUTOMATIC if to_str(raw.get("type")) == "auto" else BackupKind.MANUAL,
            status=status,
            label=to_str(raw.get("label")),
            created_at=parse_timestamp(raw.get("created")),
            finished_at=parse_timestamp(raw.get("finished")),
            size_mb=size_mb,
            available=available,
        )

    def _normalize_network(self, raw: Dict[str, Any]) -> NetworkAddress:
        address = to_str(raw.get("address"))
        family = address_family(address)
        if family is None:
            raise ValueError(f"invalid address {raw.get('address')!r}")

        # Linode states public/private explicitly; trust it over the range check
        public = raw.get("public")
        if isinstance(public, bool):
            visibility = Visibility.PUBLIC if public else Visibility.PRIVATE
        else:
            visibility = classify_address(address)

        editable = raw.get("rdns_editable", raw.get("rdnsEditable"))
        if not isinstance(editable, bool):
            editable = visibility == Visibility.PUBLIC

        return NetworkAddress(
            address=strip_prefix(address),
            family=family,
            visibility=visibility,
            assignment=to_str(raw.get("assignment")) or to_str(raw.get("type")),
            rdns=to_str(raw.get("rdns")),
            editable=editable,
            prefix=to_int(raw.get("prefix")),
            gateway=to_str(raw.get("gateway")),
        )

    def _normalize_firewall(self, raw: Dict[str, Any], instance_id: Optional[str]) -> Firewall:
        firewall_id = _require_id(raw)
        rules = raw.get("rules") or {}

        attachment = self._attachment_from_summary(raw)
        if attachment is None and instance_id is not None:
            attachment = self._match_device(raw.get("devices"), instance_id)

        return Firewall(
            id=firewall_id,
            label=to_str(raw.get("label")) or firewall_id,
            status=to_str(raw.get("status")),
            inbound=tuple(r for r in rules.get("inbound") or [] if isinstance(r, dict)),
            outbound=tuple(r for r in rules.get("outbound") or [] if isinstance(r, dict)),
            tags=string_tuple(raw.get("tags")),
            attachment=attachment,
        )

    def _match_device(self, devices: Any, instance_id: str) -> Optional[FirewallAttachment]:
        """Find the firewall device that binds this firewall to the instance."""
        for device in devices or []:
            if not isinstance(device, dict):
                continue
            entity = device.get("entity") or {}
            if (to_str(entity.get("type")) or "").lower() != "linode":
                continue
            if to_str(entity.get("id")) != str(instance_id):
                continue
            return FirewallAttachment(
                device_id=to_str(device.get("id")),
                entity_id=to_str(entity.get("id")),
                entity_label=to_str(entity.get("label")),
                entity_type="linode",
            )
        return None
