"""
Provider Adapter Layer
======================

Normalizes heterogeneous upstream records into one canonical model.

Supported Providers:
- Linode/Akamai
- DigitalOcean
"""

from .base import (
    AddressFamily,
    BackupKind,
    BackupRecord,
    BackupSchedule,
    Firewall,
    FirewallAttachment,
    Instance,
    InstanceStatus,
    NetworkAddress,
    NormalizationError,
    Plan,
    Pricing,
    Provider,
    ProviderAdapter,
    ProviderError,
    ProviderKind,
    RecordKind,
    Region,
    TypeClass,
    Visibility,
)
from .addressing import address_family, classify_address
from .error_normalizer import UpstreamError, normalize_upstream_error
from .registry import AdapterRegistry, normalize, register_adapter
from .linode import LinodeAdapter
from .digitalocean import DigitalOceanAdapter

__all__ = [
    "AddressFamily",
    "BackupKind",
    "BackupRecord",
    "BackupSchedule",
    "Firewall",
    "FirewallAttachment",
    "Instance",
    "InstanceStatus",
    "NetworkAddress",
    "NormalizationError",
    "Plan",
    "Pricing",
    "Provider",
    "ProviderAdapter",
    "ProviderError",
    "ProviderKind",
    "RecordKind",
    "Region",
    "TypeClass",
    "Visibility",
    "address_family",
    "classify_address",
    "UpstreamError",
    "normalize_upstream_error",
    "AdapterRegistry",
    "normalize",
    "register_adapter",
    "LinodeAdapter",
    "DigitalOceanAdapter",
]
