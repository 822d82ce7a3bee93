"""
Instance Control Test Fixtures
==============================

Shared fixtures for all test modules.
"""

import copy
import pytest
from unittest.mock import AsyncMock
from typing import Dict, Any


# ============================================
# CONFIG
# ============================================

@pytest.fixture
def test_config():
    """Test configuration with a branded rDNS domain."""
    from instance_control.config import ConsoleConfig, ApiConfig, NetworkingConfig

    return ConsoleConfig(
        api=ApiConfig(
            base_url="https://console.test",
            token="test-token",
            request_timeout=5.0,
        ),
        networking=NetworkingConfig(
            rdns_base_domain="mybrand.example.com",
            default_rdns_suffixes=["default.provider.net", "ip.linodeusercontent.com"],
        ),
        log_format="text",
    )


# ============================================
# UPSTREAM PAYLOADS
# ============================================

LINODE_DETAIL: Dict[str, Any] = {
    "instance": {
        "id": "vps-1",
        "label": "web-01",
        "status": "running",
        "providerType": "linode",
        "providerInstanceId": "12345",
        "region": "us-east",
        "regionLabel": "Newark, NJ",
        "ipAddress": "203.0.113.5",
        "createdAt": "2024-01-01T00:00:00Z",
        "plan": {
            "id": "g6-standard-1",
            "name": "Linode 2GB",
            "specs": {"vcpus": 1, "memory": 2048, "disk": 51200, "transfer": 2000},
            "pricing": {"monthly": 12.0, "hourly": None, "currency": "USD"},
        },
        "provider": {
            "id": 12345,
            "status": "running",
            "ipv4": ["203.0.113.5", "192.168.130.10"],
            "ipv6": "2600:3c00::f03c:91ff:fe24:1/128",
            "created": "2024-01-01T00:00:00",
        },
        "backups": {
            "enabled": True,
            "available": True,
            "schedule": {"day": "Scheduling", "window": "W4"},
            "lastSuccessful": "2024-03-01T04:12:00",
            "automatic": [
                {
                    "id": 1,
                    "type": "auto",
                    "status": "successful",
                    "created": "2024-03-01T04:00:00",
                    "finished": "2024-03-01T04:12:00",
                    "disks": [{"size": 1000}, {"size": 512}],
                },
                {"type": "auto", "status": "successful"},
            ],
            "snapshot": {"id": 2, "type": "snapshot", "status": "successful", "label": "pre-upgrade"},
            "snapshotInProgress": None,
        },
        "networking": {
            "ipv4": {
                "public": [
                    {
                        "address": "203.0.113.5",
                        "public": True,
                        "rdns": "203-0-113-5.ip.linodeusercontent.com",
                        "prefix": 24,
                        "gateway": "203.0.113.1",
                    },
                ],
                "private": [
                    {"address": "192.168.130.10", "public": False, "prefix": 17},
                ],
            },
            "ipv6": {
                "slaac": {"address": "2600:3c00::f03c:91ff:fe24:1", "prefix": 64, "rdns": None},
                "link_local": {"address": "fe80::f03c:91ff:fe24:1", "prefix": 64},
                "global": [],
            },
        },
        "firewalls": [
            {
                "id": 501,
                "label": "web",
                "status": "enabled",
                "rules": {"inbound": [{"action": "ACCEPT", "ports": "443"}], "outbound": []},
                "devices": [
                    {"id": 9001, "entity": {"id": 12345, "type": "linode", "label": "web-01"}},
                ],
            },
        ],
        "firewallOptions": [
            {"id": 501, "label": "web", "status": "enabled"},
            {"id": 502, "label": "ssh-only", "status": "enabled"},
        ],
        "activity": [
            {"id": 77, "action": "linode_boot", "status": "finished", "percentComplete": 100,
             "created": "2024-01-01T00:01:00"},
        ],
        "transfer": {"usedGb": 92, "quotaGb": 100, "billableGb": 0},
        "metrics": {
            "timeframe": {"start": 1, "end": 3},
            "cpu": {"series": [[1, 10.0], [2, 30.0], [3, 20.0]]},
        },
    }
}


@pytest.fixture
def detail_payload():
    """A Linode-backed instance detail response."""
    return copy.deepcopy(LINODE_DETAIL)


@pytest.fixture
def detail_with_status():
    """Factory for a detail response with a different upstream status."""
    def _make(status: str) -> Dict[str, Any]:
        payload = copy.deepcopy(LINODE_DETAIL)
        payload["instance"]["status"] = status
        return payload
    return _make


# ============================================
# VIEWS AND STORE
# ============================================

@pytest.fixture
def builder(test_config):
    from instance_control.instance_view import InstanceViewBuilder
    return InstanceViewBuilder(test_config)


@pytest.fixture
def view(builder, detail_payload):
    """The instance view built from the detail payload."""
    return builder.build(detail_payload)


@pytest.fixture
def store(view):
    """Store watching vps-1 with its view loaded."""
    from instance_control.instance_store import InstanceStore

    store = InstanceStore()
    store.watch("vps-1")
    store.apply_fetch("vps-1", view)
    return store


# ============================================
# CONSOLE CLIENT
# ============================================

@pytest.fixture
def mock_client(detail_payload):
    """Console client double; every endpoint succeeds."""
    from instance_control.transport import ConsoleClient

    client = AsyncMock(spec=ConsoleClient)
    client.get_instance = AsyncMock(return_value=detail_payload)
    client.power = AsyncMock(return_value={})
    client.backup_action = AsyncMock(return_value={})
    client.restore_backup = AsyncMock(return_value={})
    client.attach_firewall = AsyncMock(return_value={})
    client.detach_firewall = AsyncMock(return_value={})
    client.update_rdns = AsyncMock(return_value={})
    client.update_hostname = AsyncMock(return_value={})
    client.get_rdns_base_domain = AsyncMock(return_value="mybrand.example.com")
    return client


# ============================================
# ORCHESTRATOR
# ============================================

@pytest.fixture
def orchestrator(mock_client, store, builder, test_config):
    """Orchestrator over a mocked client and a loaded store."""
    from instance_control.orchestrator import ActionOrchestrator

    return ActionOrchestrator(
        client=mock_client,
        store=store,
        builder=builder,
        config=test_config,
    )
