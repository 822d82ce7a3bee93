"""
Provider Base Classes and Canonical Records
===========================================

Defines the canonical instance model shared by every upstream provider and
the abstract adapter interface that turns provider-specific records into it.

Adapters must:
- Normalize each record independently (a bad record never fails a batch)
- Resolve plan type classes into the canonical vocabulary
- Map provider status strings into the canonical status set
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class ProviderKind(Enum):
    LINODE = "linode"
    DIGITALOCEAN = "digitalocean"


class RecordKind(Enum):
    """Upstream record kinds an adapter knows how to normalize."""
    PLAN = "plan"
    REGION = "region"
    INSTANCE = "instance"
    BACKUP = "backup"
    NETWORK = "network"
    FIREWALL = "firewall"


class InstanceStatus(Enum):
    """Canonical instance states across all providers."""
    PROVISIONING = "provisioning"
    RUNNING = "running"
    STOPPED = "stopped"
    REBOOTING = "rebooting"
    RESTORING = "restoring"
    BACKING_UP = "backing_up"
    ERROR = "error"
    UNKNOWN = "unknown"


class TypeClass(Enum):
    STANDARD = "standard"
    CPU = "cpu"
    MEMORY = "memory"
    STORAGE = "storage"
    PREMIUM = "premium"
    GPU = "gpu"
    ACCELERATED = "accelerated"


class AddressFamily(Enum):
    IPV4 = "ipv4"
    IPV6 = "ipv6"


class Visibility(Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    UNKNOWN = "unknown"


class BackupKind(Enum):
    AUTOMATIC = "automatic"
    MANUAL = "manual"


# =========================================
# CANONICAL RECORDS
# =========================================

@dataclass(frozen=True)
class Pricing:
    """Hourly and monthly price; either side may be missing upstream."""
    hourly: Optional[float] = None
    monthly: Optional[float] = None
    currency: str = "USD"

    def __str__(self) -> str:
        return f"${self.monthly}/mo (${self.hourly}/hr)"


@dataclass(frozen=True)
class Plan:
    """A VPS plan/size, sizes in MB and transfer in GB."""
    id: str
    label: str
    provider: ProviderKind
    vcpus: int = 0
    memory_mb: int = 0
    disk_mb: int = 0
    transfer_gb: float = 0.0
    pricing: Pricing = field(default_factory=Pricing)
    type_class: TypeClass = TypeClass.STANDARD
    backup_pricing: Optional[Pricing] = None
    regions: Tuple[str, ...] = ()

    def __str__(self) -> str:
        return f"{self.label}: {self.vcpus}vCPU, {self.memory_mb}MB RAM, {self.disk_mb}MB disk [{self.type_class.value}]"


@dataclass(frozen=True)
class Region:
    """A provider region/datacenter."""
    id: str
    label: str
    provider: ProviderKind
    country: Optional[str] = None
    available: bool = True
    capabilities: Tuple[str, ...] = ()

    def __str__(self) -> str:
        return f"{self.label} ({self.country or 'unknown'})"


@dataclass(frozen=True)
class Instance:
    id: str
    label: str
    status: InstanceStatus
    provider: ProviderKind
    region: Optional[str] = None
    plan_id: Optional[str] = None
    image: Optional[str] = None
    ipv4: Tuple[str, ...] = ()
    ipv6: Tuple[str, ...] = ()
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    tags: Tuple[str, ...] = ()

    def __str__(self) -> str:
        address = self.ipv4[0] if self.ipv4 else "-"
        return f"{self.label} ({self.provider.value}): {address} [{self.status.value}]"


@dataclass(frozen=True)
class NetworkAddress:
    """An address bound to an instance, with its reverse DNS state."""
    address: str
    family: AddressFamily
    visibility: Visibility
    assignment: Optional[str] = None
    rdns: Optional[str] = None
    editable: bool = False
    prefix: Optional[int] = None
    gateway: Optional[str] = None


@dataclass(frozen=True)
class BackupRecord:
    id: str
    kind: BackupKind
    status: Optional[str] = None
    label: Optional[str] = None
    created_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    size_mb: float = 0.0
    available: bool = False


@dataclass(frozen=True)
class BackupSchedule:
    """Weekly backup slot. None on either side means the provider picks."""
    day: Optional[str] = None
    window: Optional[str] = None

    @property
    def is_auto(self) -> bool:
        return self.day is None and self.window is None


@dataclass(frozen=True)
class FirewallAttachment:
    """Binding between a firewall and one instance; device_id is needed to detach."""
    device_id: Optional[str]
    entity_id: Optional[str] = None
    entity_label: Optional[str] = None
    entity_type: Optional[str] = None


@dataclass(frozen=True)
class Firewall:
    id: str
    label: str
    status: Optional[str] = None
    inbound: Tuple[Dict[str, Any], ...] = ()
    outbound: Tuple[Dict[str, Any], ...] = ()
    tags: Tuple[str, ...] = ()
    attachment: Optional[FirewallAttachment] = None

    def __str__(self) -> str:
        return f"{self.label} ({self.id}) [{self.status or 'unknown'}]"


@dataclass(frozen=True)
class Provider:
    """A configured upstream account. credentials_ref is opaque to this client."""
    id: str
    kind: ProviderKind
    credentials_ref: Optional[str] = None
    allowed_regions: Tuple[str, ...] = ()


# =========================================
# ERRORS
# =========================================

class ProviderError(Exception):
    """Base exception for provider errors."""
    def __init__(self, provider: str, message: str, details: Optional[Dict] = None):
        self.provider = provider
        self.message = message
        self.details = details or {}
        super().__init__(f"[{provider}] {message}")


class NormalizationError(ProviderError):
    """An upstream record could not be mapped into the canonical model."""
    def __init__(self, provider: str, record_kind: RecordKind, message: str, details: Optional[Dict] = None):
        self.record_kind = record_kind
        super().__init__(provider, f"{record_kind.value}: {message}", details)


# Failures a malformed upstream record can raise while being parsed
MALFORMED_RECORD_ERRORS = (KeyError, TypeError, ValueError, AttributeError, OverflowError)


# =========================================
# VALUE COERCION
# =========================================

def to_str(value: Any) -> Optional[str]:
    """Non-empty trimmed string, or None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return number


def to_int(value: Any) -> Optional[int]:
    number = to_float(value)
    return int(number) if number is not None else None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an upstream ISO-8601 timestamp.

    Linode omits the zone designator; those values are UTC. Unparseable
    values yield None.
    """
    text = to_str(value)
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def string_tuple(values: Any) -> Tuple[str, ...]:
    if not isinstance(values, (list, tuple)):
        return ()
    return tuple(str(v) for v in values if to_str(v))


# =========================================
# ADAPTER INTERFACE
# =========================================

class ProviderAdapter(ABC):
    """
    Abstract adapter for an upstream provider's record shapes.

    Subclasses implement one ``_normalize_<kind>`` method per RecordKind.
    Each returns a canonical record or raises on malformed input; the
    public ``normalize`` wraps any parsing failure in NormalizationError.
    """

    PROVIDER_ID: str = "base"
    PROVIDER_NAME: str = "Base Provider"

    # Provider-specific type class names, lower-cased
    TYPE_CLASS_FALLBACKS: Dict[str, TypeClass] = {}

    # Provider status strings, lower-cased
    STATUS_MAP: Dict[str, InstanceStatus] = {}

    @property
    def kind(self) -> ProviderKind:
        return ProviderKind(self.PROVIDER_ID)

    def normalize(self, record_kind: RecordKind, raw: Any, *, instance_id: Optional[str] = None):
        """
        Normalize one upstream record.

        Args:
            record_kind: Which kind of record ``raw`` is
            raw: Decoded JSON object from the provider
            instance_id: Owning instance, used to resolve firewall attachments

        Returns:
            The canonical record for ``record_kind``

        Raises:
            NormalizationError: If the record cannot be parsed
        """
        if not isinstance(raw, dict):
            raise NormalizationError(
                self.PROVIDER_ID, record_kind, f"expected an object, got {type(raw).__name__}"
            )

        handler = getattr(self, f"_normalize_{record_kind.value}")
        try:
            if record_kind == RecordKind.FIREWALL:
                return handler(raw, instance_id)
            return handler(raw)
        except NormalizationError:
            raise
        except MALFORMED_RECORD_ERRORS as e:
            raise NormalizationError(self.PROVIDER_ID, record_kind, str(e), {"raw": raw})

    def normalize_many(
        self,
        record_kind: RecordKind,
        raws: Iterable[Any],
        *,
        instance_id: Optional[str] = None,
    ) -> List[Any]:
        """Normalize a batch, dropping (and logging) records that fail."""
        records = []
        for raw in raws or []:
            try:
                records.append(self.normalize(record_kind, raw, instance_id=instance_id))
            except NormalizationError as e:
                logger.warning(
                    f"Dropping {record_kind.value} record from {self.PROVIDER_ID}: {e.message}",
                    extra={"provider": self.PROVIDER_ID},
                )
        return records

    def resolve_type_class(self, value: Any) -> TypeClass:
        """
        Map a provider plan class into the canonical vocabulary.

        Canonical names pass through, provider names go through the
        fallback table, and anything else becomes STANDARD with a warning.
        """
        normalized = (to_str(value) or "").lower()
        if not normalized:
            return TypeClass.STANDARD

        try:
            return TypeClass(normalized)
        except ValueError:
            pass

        mapped = self.TYPE_CLASS_FALLBACKS.get(normalized)
        if mapped is not None:
            return mapped

        logger.warning(
            f"Unrecognized type class '{value}' from {self.PROVIDER_ID}, using standard",
            extra={"provider": self.PROVIDER_ID},
        )
        return TypeClass.STANDARD

    def map_status(self, value: Any) -> InstanceStatus:
        normalized = (to_str(value) or "").lower()
        if normalized in self.STATUS_MAP:
            return self.STATUS_MAP[normalized]
        try:
            return InstanceStatus(normalized)
        except ValueError:
            return InstanceStatus.UNKNOWN

    def _attachment_from_summary(self, raw: Dict[str, Any]) -> Optional[FirewallAttachment]:
        """Pre-resolved attachment as produced by the console API."""
        attachment = raw.get("attachment")
        if not isinstance(attachment, dict):
            return None
        return FirewallAttachment(
            device_id=to_str(attachment.get("id")),
            entity_id=to_str(attachment.get("entityId")),
            entity_label=to_str(attachment.get("entityLabel")),
            entity_type=to_str(attachment.get("type")),
        )

    # =========================================
    # PER-KIND NORMALIZERS
    # =========================================

    @abstractmethod
    def _normalize_plan(self, raw: Dict[str, Any]) -> Plan:
        pass

    @abstractmethod
    def _normalize_region(self, raw: Dict[str, Any]) -> Region:
        pass

    @abstractmethod
    def _normalize_instance(self, raw: Dict[str, Any]) -> Instance:
        pass

    @abstractmethod
    def _normalize_backup(self, raw: Dict[str, Any]) -> BackupRecord:
        pass

    @abstractmethod
    def _normalize_network(self, raw: Dict[str, Any]) -> NetworkAddress:
        pass

    @abstractmethod
    def _normalize_firewall(self, raw: Dict[str, Any], instance_id: Optional[str]) -> Firewall:
        pass

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} ({self.PROVIDER_ID})>"
