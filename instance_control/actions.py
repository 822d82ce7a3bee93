"""
Action Requests and Results
===========================

Types exchanged with the action orchestrator:
- ActionCategory: the lock granularity (power, backup, firewall, rdns, hostname)
- Payload models validated with pydantic before any lock or network call
- ActionResult: what every dispatch returns instead of raising
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .providers.addressing import address_family
from .services.backups import validate_day, validate_window
from .services.networking import normalize_rdns_value

HOSTNAME_PATTERN = re.compile(r"^[a-zA-Z0-9._-]{3,64}$")


class ActionCategory(Enum):
    POWER = "power"
    BACKUP = "backup"
    FIREWALL = "firewall"
    RDNS = "rdns"
    HOSTNAME = "hostname"


class ActionState(Enum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class ErrorKind(Enum):
    ACTION_IN_PROGRESS = "ActionInProgress"
    ILLEGAL_ACTION = "IllegalAction"
    MISSING_ATTACHMENT_REFERENCE = "MissingAttachmentReference"
    VALIDATION_FAILED = "ValidationFailed"
    PROVIDER_FAILURE = "ProviderFailure"
    TRANSPORT_FAILURE = "TransportFailure"


@dataclass
class ActionRequest:
    """One mutation, from dispatch until it settles."""
    resource_id: str
    category: ActionCategory
    action: str
    lock_resource: str
    state: ActionState = ActionState.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def lock_key(self) -> Tuple[str, ActionCategory]:
        return (self.lock_resource, self.category)


@dataclass(frozen=True)
class ActionResult:
    ok: bool
    request: Optional[ActionRequest] = None
    error: Optional[ErrorKind] = None
    message: Optional[str] = None

    @classmethod
    def success(cls, request: ActionRequest) -> "ActionResult":
        return cls(ok=True, request=request)

    @classmethod
    def failure(cls, error: ErrorKind, message: str, request: Optional[ActionRequest] = None) -> "ActionResult":
        return cls(ok=False, request=request, error=error, message=message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "error": self.error.value if self.error else None,
            "message": self.message,
            "category": self.request.category.value if self.request else None,
            "action": self.request.action if self.request else None,
            "state": self.request.state.value if self.request else None,
        }


def _as_id(value: Any) -> Optional[str]:
    """Upstream ids arrive as ints or strings."""
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text or None


# =========================================
# PAYLOADS
# =========================================

class PowerRequest(BaseModel):
    action: Literal["boot", "shutdown", "reboot"]


class BackupRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: Literal["enable", "disable", "snapshot", "schedule", "restore"]
    label: Optional[str] = None
    day: Optional[str] = None
    window: Optional[str] = None
    backup_id: Optional[str] = Field(default=None, alias="backupId")

    @field_validator("backup_id", mode="before")
    @classmethod
    def coerce_backup_id(cls, v):
        return _as_id(v)

    @field_validator("label")
    @classmethod
    def validate_label(cls, v):
        if v is None:
            return None
        v = v.strip()
        if len(v) > 255:
            raise ValueError("Snapshot label must be at most 255 characters")
        return v or None

    @field_validator("day")
    @classmethod
    def check_day(cls, v):
        return validate_day(v)

    @field_validator("window")
    @classmethod
    def check_window(cls, v):
        return validate_window(v)

    @model_validator(mode="after")
    def require_backup_id(self):
        if self.action == "restore" and not self.backup_id:
            raise ValueError("Select a backup to restore")
        return self


class FirewallRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: Literal["attach", "detach"]
    firewall_id: Optional[str] = Field(default=None, alias="firewallId")
    device_id: Optional[str] = Field(default=None, alias="deviceId")

    @field_validator("firewall_id", "device_id", mode="before")
    @classmethod
    def coerce_ids(cls, v):
        return _as_id(v)


class RdnsRequest(BaseModel):
    address: str
    rdns: Optional[str] = None

    @field_validator("address")
    @classmethod
    def validate_address(cls, v):
        v = v.strip()
        if address_family(v) is None:
            raise ValueError(f"Invalid IP address: {v}")
        return v

    @field_validator("rdns")
    @classmethod
    def validate_rdns(cls, v):
        return normalize_rdns_value(v)


class HostnameRequest(BaseModel):
    hostname: str

    @field_validator("hostname")
    @classmethod
    def validate_hostname(cls, v):
        v = v.strip()
        if not HOSTNAME_PATTERN.match(v):
            raise ValueError("Hostname must be 3-64 chars: letters, numbers, dots, hyphens, underscores")
        return v


PAYLOAD_MODELS = {
    ActionCategory.POWER: PowerRequest,
    ActionCategory.BACKUP: BackupRequest,
    ActionCategory.FIREWALL: FirewallRequest,
    ActionCategory.RDNS: RdnsRequest,
    ActionCategory.HOSTNAME: HostnameRequest,
}
