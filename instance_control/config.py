"""
Instance Control Configuration
==============================

Single source of truth for all configuration values.
Reads from environment variables with sensible defaults.
"""

import os
from typing import List
from dataclasses import dataclass, field


DEFAULT_RDNS_SUFFIXES = ["ip.linodeusercontent.com", "members.linode.com"]


@dataclass
class ApiConfig:
    """Console API endpoint and bearer credentials."""
    base_url: str = "http://localhost:3001"
    token: str = ""
    request_timeout: float = 30.0

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url and self.token)


@dataclass
class NetworkingConfig:
    """White-label reverse DNS settings."""
    rdns_base_domain: str = "ip.rev.example.net"
    default_rdns_suffixes: List[str] = field(
        default_factory=lambda: list(DEFAULT_RDNS_SUFFIXES)
    )


@dataclass
class BillingConfig:
    backup_price_ratio: float = 0.4
    hours_per_month: int = 730
    daily_backup_multiplier: float = 1.5
    transfer_warning_percent: float = 90.0


@dataclass
class ProgressConfig:
    # Expected duration of a fresh provision, drives the progress heuristic
    provisioning_estimate_seconds: float = 300.0


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class ConsoleConfig:
    """Master configuration for the instance control client."""

    api: ApiConfig = field(default_factory=ApiConfig)
    networking: NetworkingConfig = field(default_factory=NetworkingConfig)
    billing: BillingConfig = field(default_factory=BillingConfig)
    progress: ProgressConfig = field(default_factory=ProgressConfig)

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> "ConsoleConfig":
        """Load configuration from environment variables."""
        return cls(
            api=ApiConfig(
                base_url=os.environ.get("CONSOLE_API_URL", "http://localhost:3001"),
                token=os.environ.get("CONSOLE_API_TOKEN", ""),
                request_timeout=float(os.environ.get("CONSOLE_REQUEST_TIMEOUT", "30")),
            ),
            networking=NetworkingConfig(
                rdns_base_domain=os.environ.get("RDNS_BASE_DOMAIN", "ip.rev.example.net"),
                default_rdns_suffixes=_split_list(
                    os.environ.get("RDNS_DEFAULT_SUFFIXES", ",".join(DEFAULT_RDNS_SUFFIXES))
                ),
            ),
            billing=BillingConfig(
                backup_price_ratio=float(os.environ.get("BACKUP_PRICE_RATIO", "0.4")),
                hours_per_month=int(os.environ.get("HOURS_PER_MONTH", "730")),
                daily_backup_multiplier=float(os.environ.get("DAILY_BACKUP_MULTIPLIER", "1.5")),
                transfer_warning_percent=float(os.environ.get("TRANSFER_WARNING_PERCENT", "90")),
            ),
            progress=ProgressConfig(
                provisioning_estimate_seconds=float(
                    os.environ.get("PROVISIONING_ESTIMATE_SECONDS", "300")
                ),
            ),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            log_format=os.environ.get("LOG_FORMAT", "json"),
        )
