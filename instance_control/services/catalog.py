"""
Catalog Service
===============

Upstream plan and region catalogs, normalized per provider.

- The console relays each provider's raw catalog; every list goes through
  that provider's adapter and bad records are dropped
- One provider's catalog failing does not hide the others
- A provider's allowed-region list narrows regions (and plans sold only
  outside them) unless it is empty or just the provider's default set
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from ..providers.base import Plan, Provider, ProviderError, ProviderKind, RecordKind, Region
from ..providers.registry import AdapterRegistry
from ..transport import ConsoleClient

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_REGIONS = {
    ProviderKind.LINODE: (
        "us-east", "us-west", "us-central", "us-southeast", "eu-west",
        "eu-central", "ap-south", "ap-southeast", "ap-northeast", "ca-central",
    ),
    ProviderKind.DIGITALOCEAN: (
        "nyc1", "nyc3", "ams3", "sfo3", "sgp1", "lon1", "fra1", "tor1", "blr1", "syd1",
    ),
}


def normalize_region_list(regions: Iterable[Any]) -> List[str]:
    """Trimmed, lower-cased, de-duplicated region ids in first-seen order."""
    seen = []
    for value in regions or []:
        if not isinstance(value, str):
            continue
        region = value.strip().lower()
        if region and region not in seen:
            seen.append(region)
    return seen


def parse_allowed_regions(raw: Any) -> List[str]:
    """Read a stored allowed-regions value: a list, a JSON array string or an index->value mapping."""
    if not raw:
        return []
    if isinstance(raw, (list, tuple)):
        return normalize_region_list(raw)
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except ValueError:
            logger.warning(f"Failed to parse stored allowed regions value: {raw!r}")
            return []
        return normalize_region_list(parsed) if isinstance(parsed, list) else []
    if isinstance(raw, dict):
        return normalize_region_list(raw.values())
    return []


def matches_default_regions(kind: ProviderKind, regions: List[str]) -> bool:
    defaults = DEFAULT_ALLOWED_REGIONS.get(kind)
    if not regions or defaults is None:
        return False
    return len(regions) == len(defaults) and set(regions) == set(defaults)


def should_filter_by_allowed_regions(kind: ProviderKind, regions: List[str]) -> bool:
    return bool(regions) and not matches_default_regions(kind, regions)


class CatalogService:
    """Fetches and normalizes upstream plans and regions."""

    def __init__(self, client: ConsoleClient, providers: Iterable[Provider] = ()):
        self.client = client
        self.providers = {provider.kind: provider for provider in providers}

    # =========================================
    # FETCH
    # =========================================

    async def fetch_plans(self) -> Dict[ProviderKind, List[Plan]]:
        body = await self.client.get_upstream_plans()
        catalog = self._normalize_catalog(body, "plans", RecordKind.PLAN)
        return {kind: self.filter_plans(kind, plans) for kind, plans in catalog.items()}

    async def fetch_regions(self) -> Dict[ProviderKind, List[Region]]:
        body = await self.client.get_upstream_regions()
        catalog = self._normalize_catalog(body, "regions", RecordKind.REGION)
        return {kind: self.filter_regions(kind, regions) for kind, regions in catalog.items()}

    def _normalize_catalog(self, body: Any, key: str, record_kind: RecordKind) -> Dict[ProviderKind, List[Any]]:
        """
        Split a catalog body into per-provider lists and normalize each.

        A bare list (or ``{key: [...]}``) belongs to Linode, the console's
        default provider. ``{key: {provider: [...]}}`` and ``{provider: [...]}``
        carry one list per provider.
        """
        if isinstance(body, dict) and key in body:
            body = body[key]
        if isinstance(body, list):
            body = {ProviderKind.LINODE.value: body}
        if not isinstance(body, dict):
            logger.warning(f"Unexpected {key} catalog body: {type(body).__name__}")
            return {}

        catalog = {}
        for name, raws in body.items():
            try:
                adapter = AdapterRegistry.get(name)
            except ProviderError as e:
                logger.warning(f"Skipping {key} for unknown provider '{name}': {e.message}")
                continue
            if not isinstance(raws, list):
                logger.warning(
                    f"Skipping {key} from {adapter.PROVIDER_ID}: expected a list",
                    extra={"provider": adapter.PROVIDER_ID},
                )
                continue
            catalog[adapter.kind] = adapter.normalize_many(record_kind, raws)
        return catalog

    # =========================================
    # ALLOWED REGIONS
    # =========================================

    def allowed_regions(self, kind: ProviderKind) -> Optional[List[str]]:
        """The provider's effective region allow-list, or None when unrestricted."""
        provider = self.providers.get(kind)
        if provider is None:
            return None
        regions = parse_allowed_regions(provider.allowed_regions)
        if not should_filter_by_allowed_regions(kind, regions):
            return None
        return regions

    def filter_regions(self, kind: ProviderKind, regions: List[Region]) -> List[Region]:
        allowed = self.allowed_regions(kind)
        if allowed is None:
            return regions
        return [region for region in regions if region.id.lower() in allowed]

    def filter_plans(self, kind: ProviderKind, plans: List[Plan]) -> List[Plan]:
        """Drop plans sold only outside the allowed regions; plans without a region list stay."""
        allowed = self.allowed_regions(kind)
        if allowed is None:
            return plans
        return [
            plan for plan in plans
            if not plan.regions or any(region.lower() in allowed for region in plan.regions)
        ]
