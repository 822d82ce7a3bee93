"""
Tests for Provider Adapters
===========================

Tests record normalization, type classes, status maps and the registry.
"""

import logging
from datetime import timezone

import pytest

from instance_control.providers import (
    AdapterRegistry,
    BackupKind,
    DigitalOceanAdapter,
    InstanceStatus,
    LinodeAdapter,
    NormalizationError,
    ProviderError,
    ProviderKind,
    RecordKind,
    TypeClass,
    Visibility,
    normalize,
)
from instance_control.providers.base import parse_timestamp, to_float, to_int

BASE_LOGGER = "instance_control.providers.base"


@pytest.fixture
def linode():
    return AdapterRegistry.get("linode")


@pytest.fixture
def digitalocean():
    return AdapterRegistry.get(ProviderKind.DIGITALOCEAN)


class TestTypeClass:
    """Plan classes always land in the canonical vocabulary."""

    @pytest.mark.parametrize("value,expected", [
        ("nanode", TypeClass.STANDARD),
        ("standard", TypeClass.STANDARD),
        ("dedicated", TypeClass.CPU),
        ("highmem", TypeClass.MEMORY),
        ("premium", TypeClass.PREMIUM),
        ("GPU", TypeClass.GPU),
    ])
    def test_linode_classes(self, linode, value, expected):
        assert linode.resolve_type_class(value) == expected

    @pytest.mark.parametrize("value,expected", [
        ("Basic", TypeClass.STANDARD),
        ("General Purpose", TypeClass.STANDARD),
        ("CPU-Optimized", TypeClass.CPU),
        ("Memory-Optimized", TypeClass.MEMORY),
        ("Storage-Optimized", TypeClass.STORAGE),
    ])
    def test_digitalocean_classes(self, digitalocean, value, expected):
        assert digitalocean.resolve_type_class(value) == expected

    def test_unknown_class_warns_once(self, linode, caplog):
        """Unrecognized classes become standard with exactly one warning."""
        with caplog.at_level(logging.WARNING, logger=BASE_LOGGER):
            result = linode.resolve_type_class("quantum")

        assert result == TypeClass.STANDARD
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert "quantum" in warnings[0].getMessage()

    def test_missing_class_is_silent(self, linode, caplog):
        with caplog.at_level(logging.WARNING, logger=BASE_LOGGER):
            assert linode.resolve_type_class(None) == TypeClass.STANDARD
            assert linode.resolve_type_class("  ") == TypeClass.STANDARD
        assert caplog.records == []


class TestStatusMaps:

    @pytest.mark.parametrize("value,expected", [
        ("running", InstanceStatus.RUNNING),
        ("offline", InstanceStatus.STOPPED),
        ("booting", InstanceStatus.PROVISIONING),
        ("rebooting", InstanceStatus.REBOOTING),
        ("shutting_down", InstanceStatus.STOPPED),
        ("migrating", InstanceStatus.PROVISIONING),
        ("restoring", InstanceStatus.RESTORING),
        ("Running", InstanceStatus.RUNNING),
        ("melting", InstanceStatus.UNKNOWN),
        (None, InstanceStatus.UNKNOWN),
    ])
    def test_linode(self, linode, value, expected):
        assert linode.map_status(value) == expected

    @pytest.mark.parametrize("value,expected", [
        ("new", InstanceStatus.PROVISIONING),
        ("active", InstanceStatus.RUNNING),
        ("off", InstanceStatus.STOPPED),
        ("archive", InstanceStatus.STOPPED),
        ("backing_up", InstanceStatus.BACKING_UP),
        ("unknown-thing", InstanceStatus.UNKNOWN),
    ])
    def test_digitalocean(self, digitalocean, value, expected):
        assert digitalocean.map_status(value) == expected


class TestLinodeAdapter:

    def test_plan(self, linode):
        plan = linode.normalize(RecordKind.PLAN, {
            "id": "g6-dedicated-2",
            "label": "Dedicated 4GB",
            "class": "dedicated",
            "type_class": "dedicated",
            "vcpus": 2,
            "memory": 4096,
            "disk": 81920,
            "transfer": 4000,
            "price": {"hourly": 0.054, "monthly": 36.0},
            "addons": {"backups": {"price": {"hourly": 0.012, "monthly": 8.0}}},
            "regions": ["us-east", "eu-west"],
        })

        assert plan.type_class == TypeClass.CPU
        assert plan.pricing.monthly == 36.0
        assert plan.backup_pricing.monthly == 8.0
        assert plan.regions == ("us-east", "eu-west")

    def test_plan_without_addons(self, linode):
        plan = linode.normalize(RecordKind.PLAN, {"id": "g6-nanode-1", "type_class": "nanode"})
        assert plan.backup_pricing is None
        assert plan.pricing.hourly is None
        assert plan.label == "g6-nanode-1"

    def test_region(self, linode):
        region = linode.normalize(RecordKind.REGION, {
            "id": "eu-west", "label": "London, UK", "country": "gb", "status": "outage",
        })
        assert region.country == "GB"
        assert region.available is False

    def test_instance(self, linode):
        instance = linode.normalize(RecordKind.INSTANCE, {
            "id": 12345,
            "label": "web-01",
            "status": "running",
            "region": "us-east",
            "type": "g6-standard-1",
            "ipv4": ["203.0.113.5"],
            "ipv6": "2600:3c00::1/128",
            "created": "2024-01-01T00:00:00",
        })
        assert instance.id == "12345"
        assert instance.ipv6 == ("2600:3c00::1",)
        assert instance.plan_id == "g6-standard-1"
        assert instance.created_at.tzinfo == timezone.utc

    def test_backup_size_from_disks(self, linode):
        backup = linode.normalize(RecordKind.BACKUP, {
            "id": 9, "type": "snapshot", "status": "pending", "disks": [{"size": 100}, {"size": 28}],
        })
        assert backup.kind == BackupKind.MANUAL
        assert backup.size_mb == 128.0
        assert backup.available is False

    def test_network_explicit_public_wins(self, linode):
        """The provider's public flag wins over the address range."""
        address = linode.normalize(RecordKind.NETWORK, {"address": "10.0.0.5", "public": True})
        assert address.visibility == Visibility.PUBLIC
        assert address.editable is True

    def test_network_editable_flag(self, linode):
        address = linode.normalize(RecordKind.NETWORK, {
            "address": "203.0.113.9", "public": True, "rdns_editable": False,
        })
        assert address.editable is False

    def test_firewall_device_match(self, linode):
        raw = {
            "id": 501,
            "label": "web",
            "devices": [
                {"id": 7, "entity": {"id": 999, "type": "linode"}},
                {"id": 8, "entity": {"id": 12345, "type": "nodebalancer"}},
                {"id": 9, "entity": {"id": 12345, "type": "linode", "label": "web-01"}},
            ],
        }
        firewall = linode.normalize(RecordKind.FIREWALL, raw, instance_id="12345")
        assert firewall.attachment.device_id == "9"
        assert firewall.attachment.entity_label == "web-01"

    def test_firewall_no_match(self, linode):
        raw = {"id": 501, "devices": [{"id": 7, "entity": {"id": 999, "type": "linode"}}]}
        firewall = linode.normalize(RecordKind.FIREWALL, raw, instance_id="12345")
        assert firewall.attachment is None
        assert firewall.label == "501"

    def test_firewall_console_summary(self, linode):
        """A pre-resolved attachment from the console is used as-is."""
        raw = {"id": 501, "attachment": {"id": 44, "entityId": 12345, "type": "linode"}}
        firewall = linode.normalize(RecordKind.FIREWALL, raw)
        assert firewall.attachment.device_id == "44"


class TestDigitalOceanAdapter:

    def test_plan_units(self, digitalocean):
        """Disk GB becomes MB and transfer TB becomes GB."""
        plan = digitalocean.normalize(RecordKind.PLAN, {
            "slug": "c-2",
            "description": "CPU-Optimized",
            "vcpus": 2,
            "memory": 4096,
            "disk": 25,
            "transfer": 4,
            "price_monthly": 42,
            "price_hourly": 0.0625,
        })
        assert plan.disk_mb == 25600
        assert plan.transfer_gb == 4096.0
        assert plan.type_class == TypeClass.CPU
        assert plan.label == "CPU-Optimized"

    def test_region_country(self, digitalocean):
        region = digitalocean.normalize(RecordKind.REGION, {"slug": "fra1", "name": "Frankfurt 1", "available": False})
        assert region.country == "Germany"
        assert region.available is False

    def test_instance_public_first(self, digitalocean):
        instance = digitalocean.normalize(RecordKind.INSTANCE, {
            "id": 301,
            "name": "droplet-01",
            "status": "active",
            "size_slug": "s-1vcpu-1gb",
            "region": {"slug": "nyc3"},
            "networks": {
                "v4": [
                    {"ip_address": "10.10.0.2", "type": "private"},
                    {"ip_address": "198.51.100.7", "type": "public"},
                ],
                "v6": [],
            },
        })
        assert instance.ipv4 == ("198.51.100.7", "10.10.0.2")
        assert instance.region == "nyc3"
        assert instance.status == InstanceStatus.RUNNING

    def test_network_not_editable(self, digitalocean):
        address = digitalocean.normalize(RecordKind.NETWORK, {
            "ip_address": "198.51.100.7", "type": "public", "netmask": "255.255.240.0",
        })
        assert address.visibility == Visibility.PUBLIC
        assert address.editable is False
        assert address.prefix == 20

    def test_firewall_droplet_ids(self, digitalocean):
        firewall = digitalocean.normalize(RecordKind.FIREWALL, {
            "id": "fw-1",
            "name": "web",
            "droplet_ids": [301, 302],
            "inbound_rules": [{"protocol": "tcp", "ports": "22"}],
        }, instance_id="302")
        assert firewall.attachment.device_id == "302"
        assert firewall.attachment.entity_type == "droplet"
        assert firewall.inbound == ({"protocol": "tcp", "ports": "22"},)

    def test_backup(self, digitalocean):
        backup = digitalocean.normalize(RecordKind.BACKUP, {
            "id": 88, "name": "nightly", "size_gigabytes": 2, "created_at": "2024-02-01T00:00:00Z",
        })
        assert backup.size_mb == 2048.0
        assert backup.label == "nightly"
        assert backup.available is True


class TestNormalizeErrors:

    def test_non_object_rejected(self, linode):
        with pytest.raises(NormalizationError) as exc:
            linode.normalize(RecordKind.PLAN, ["not", "a", "plan"])
        assert exc.value.record_kind == RecordKind.PLAN
        assert exc.value.provider == "linode"

    def test_missing_id_rejected(self, digitalocean):
        with pytest.raises(NormalizationError):
            digitalocean.normalize(RecordKind.REGION, {"name": "Nowhere"})

    def test_batch_drops_bad_records(self, linode, caplog):
        """One bad record never fails the batch."""
        with caplog.at_level(logging.WARNING, logger=BASE_LOGGER):
            regions = linode.normalize_many(RecordKind.REGION, [
                {"id": "us-east"}, {"label": "no id"}, "garbage", {"id": "eu-west"},
            ])
        assert [r.id for r in regions] == ["us-east", "eu-west"]
        assert len(caplog.records) == 2

    def test_overflowing_size_dropped(self, digitalocean, caplog):
        """A disk size that overflows on unit conversion drops only that plan."""
        with caplog.at_level(logging.WARNING, logger=BASE_LOGGER):
            plans = digitalocean.normalize_many(RecordKind.PLAN, [
                {"slug": "s-1vcpu-1gb", "disk": 25},
                {"slug": "s-huge", "disk": "1e308"},
                {"slug": "s-2vcpu-2gb", "disk": 50},
            ])
        assert [p.id for p in plans] == ["s-1vcpu-1gb", "s-2vcpu-2gb"]
        assert len(caplog.records) == 1

    def test_overflow_wrapped_as_normalization_error(self, digitalocean):
        with pytest.raises(NormalizationError):
            digitalocean.normalize(RecordKind.PLAN, {"slug": "s-huge", "disk": "1e308"})


class TestRegistry:

    def test_shared_instances(self):
        assert AdapterRegistry.get("linode") is AdapterRegistry.get(ProviderKind.LINODE)
        assert isinstance(AdapterRegistry.get("DigitalOcean"), DigitalOceanAdapter)
        assert isinstance(AdapterRegistry.get("linode"), LinodeAdapter)

    def test_unknown_provider(self):
        with pytest.raises(ProviderError) as exc:
            AdapterRegistry.get("vultr")
        assert exc.value.provider == "vultr"

    def test_list_providers(self):
        ids = {p["id"] for p in AdapterRegistry.list_providers()}
        assert {"linode", "digitalocean"} <= ids

    def test_module_normalize(self):
        region = normalize("digitalocean", RecordKind.REGION, {"slug": "ams3"})
        assert region.provider == ProviderKind.DIGITALOCEAN
        assert region.country == "Netherlands"


class TestCoercion:

    def test_to_float(self):
        assert to_float("1.5") == 1.5
        assert to_float(True) is None
        assert to_float("nan") is None
        assert to_float("abc") is None

    def test_to_int(self):
        assert to_int("2048") == 2048
        assert to_int(None) is None

    def test_parse_timestamp(self):
        assert parse_timestamp("2024-01-01T00:00:00").tzinfo == timezone.utc
        assert parse_timestamp("2024-01-01T00:00:00Z").tzinfo is not None
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp("") is None
