"""
Backup Accounting
=================

Derives backup pricing, transfer-quota utilization and backup schedule
values from plan and provider data.

Pricing rules:
- A missing hourly or monthly price is derived from the other (730-hour month)
- The backup add-on is 40% of the plan's base price, computed separately for
  the hourly and the monthly figure
- Daily backups cost 1.5x the weekly price
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from ..config import BillingConfig
from ..providers.base import BackupSchedule, Pricing, to_float, to_str

logger = logging.getLogger(__name__)

WEEKDAYS = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")

# Two-hour UTC slots, W0 = 00:00-02:00
BACKUP_WINDOWS = tuple(f"W{hour}" for hour in range(0, 24, 2))

# Values meaning "let the provider choose"; Linode reports "Scheduling"
AUTO_SENTINELS = frozenset({"", "auto", "scheduling"})


@dataclass(frozen=True)
class BackupCost:
    frequency: str
    monthly: float
    hourly: float


@dataclass(frozen=True)
class TransferUsage:
    used_gb: float
    quota_gb: float
    usage_percent: float
    remaining_gb: float
    approaching_quota: bool


@dataclass(frozen=True)
class TransferSummary:
    """
    Transfer figures for one instance.

    ``usage`` is what to display: the account pool when one is reported,
    otherwise the instance's own allowance. ``instance`` is always the
    per-instance breakdown.
    """
    usage: TransferUsage
    instance: TransferUsage
    account: Optional[TransferUsage] = None
    billable_gb: float = 0.0


def _schedule_value(value: Any) -> Optional[str]:
    text = to_str(value)
    if text is None or text.lower() in AUTO_SENTINELS:
        return None
    return text


def normalize_schedule(day: Any = None, window: Any = None) -> BackupSchedule:
    """Upstream schedule to canonical form; sentinels and blanks become auto (None)."""
    return BackupSchedule(day=_schedule_value(day), window=_schedule_value(window))


def validate_day(value: Any) -> Optional[str]:
    day = _schedule_value(value)
    if day is None:
        return None
    for weekday in WEEKDAYS:
        if weekday.lower() == day.lower():
            return weekday
    raise ValueError(f"Invalid backup day: {value}")


def validate_window(value: Any) -> Optional[str]:
    window = _schedule_value(value)
    if window is None:
        return None
    window = window.upper()
    if window not in BACKUP_WINDOWS:
        raise ValueError(f"Invalid backup window: {value}")
    return window


def validate_schedule(day: Any = None, window: Any = None) -> BackupSchedule:
    """
    Validate a schedule before saving it.

    Both sides auto is legal and means the provider picks the slot.

    Raises:
        ValueError: If the day or the window is not a known value
    """
    return BackupSchedule(day=validate_day(day), window=validate_window(window))


class BackupAccounting:
    """Pricing and transfer arithmetic, parameterized by billing config."""

    def __init__(self, config: Optional[BillingConfig] = None):
        self.config = config or BillingConfig()

    # =========================================
    # PRICING
    # =========================================

    def complete_pricing(self, pricing: Optional[Pricing]) -> Pricing:
        """Fill in the missing side of a price using the 730-hour month."""
        hours = self.config.hours_per_month
        pricing = pricing or Pricing()
        hourly = to_float(pricing.hourly)
        monthly = to_float(pricing.monthly)

        if hourly is None and monthly is None:
            logger.debug("Plan has no pricing, treating as free")
            return Pricing(hourly=0.0, monthly=0.0, currency=pricing.currency)
        if monthly is None:
            monthly = hourly * hours
        if hourly is None:
            hourly = monthly / hours
        return Pricing(hourly=hourly, monthly=monthly, currency=pricing.currency)

    def backup_pricing(self, pricing: Optional[Pricing]) -> Pricing:
        """
        Backup add-on price for a plan.

        Always derived from the plan's own price so it exists even when the
        provider reports no backup price. Hourly and monthly are each taken
        from their own base to avoid compounding rounding.
        """
        base = self.complete_pricing(pricing)
        ratio = self.config.backup_price_ratio
        return Pricing(
            hourly=base.hourly * ratio,
            monthly=base.monthly * ratio,
            currency=base.currency,
        )

    def backup_cost(
        self,
        pricing: Optional[Pricing],
        frequency: str = "weekly",
        upcharge_monthly: float = 0.0,
    ) -> BackupCost:
        """Monthly and hourly backup cost for a weekly or daily schedule."""
        if frequency not in ("weekly", "daily"):
            raise ValueError(f"Unknown backup frequency: {frequency}")

        weekly = self.backup_pricing(pricing).monthly + (upcharge_monthly or 0.0)
        monthly = weekly * self.config.daily_backup_multiplier if frequency == "daily" else weekly
        return BackupCost(
            frequency=frequency,
            monthly=monthly,
            hourly=monthly / self.config.hours_per_month,
        )

    # =========================================
    # TRANSFER
    # =========================================

    def transfer_usage(self, used_gb: Any, quota_gb: Any) -> TransferUsage:
        used = max(to_float(used_gb) or 0.0, 0.0)
        quota = max(to_float(quota_gb) or 0.0, 0.0)

        percent = 0.0
        if quota > 0:
            percent = max(0.0, min(100.0, used / quota * 100.0))

        return TransferUsage(
            used_gb=used,
            quota_gb=quota,
            usage_percent=percent,
            remaining_gb=max(quota - used, 0.0),
            approaching_quota=percent >= self.config.transfer_warning_percent,
        )

    def transfer_summary(
        self,
        used_gb: Any,
        quota_gb: Any,
        account_used_gb: Any = None,
        account_quota_gb: Any = None,
        billable_gb: Any = 0.0,
    ) -> TransferSummary:
        """Per-instance usage plus the account pool, which wins when reported."""
        instance = self.transfer_usage(used_gb, quota_gb)

        account = None
        if to_float(account_quota_gb) is not None:
            account = self.transfer_usage(account_used_gb, account_quota_gb)

        return TransferSummary(
            usage=account or instance,
            instance=instance,
            account=account,
            billable_gb=to_float(billable_gb) or 0.0,
        )
