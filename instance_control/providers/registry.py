"""
Provider Adapter Registry
=========================

Central registry of record adapters, keyed by provider kind.
Adapters are stateless, so one shared instance per provider is kept.
"""

from typing import Any, Dict, List, Optional, Type, Union

from .base import ProviderAdapter, ProviderError, ProviderKind, RecordKind


class AdapterRegistry:
    """Registry of available provider adapters."""

    _adapters: Dict[str, Type[ProviderAdapter]] = {}
    _instances: Dict[str, ProviderAdapter] = {}

    @classmethod
    def register(cls, adapter_class: Type[ProviderAdapter]) -> None:
        cls._adapters[adapter_class.PROVIDER_ID] = adapter_class

    @classmethod
    def list_providers(cls) -> List[Dict[str, str]]:
        return [
            {"id": adapter_class.PROVIDER_ID, "name": adapter_class.PROVIDER_NAME}
            for adapter_class in cls._adapters.values()
        ]

    @classmethod
    def get(cls, provider: Union[ProviderKind, str]) -> ProviderAdapter:
        """
        Get the shared adapter for a provider.

        Args:
            provider: ProviderKind or its string id

        Raises:
            ProviderError: If no adapter is registered for the provider
        """
        provider_id = provider.value if isinstance(provider, ProviderKind) else str(provider).lower()

        instance = cls._instances.get(provider_id)
        if instance is not None:
            return instance

        adapter_class = cls._adapters.get(provider_id)
        if not adapter_class:
            raise ProviderError(
                provider_id,
                f"Provider not found: {provider_id}. "
                f"Available: {list(cls._adapters.keys())}"
            )

        instance = adapter_class()
        cls._instances[provider_id] = instance
        return instance


def register_adapter(adapter_class: Type[ProviderAdapter]):
    """
    Decorator to register an adapter class.

    Usage:
        @register_adapter
        class LinodeAdapter(ProviderAdapter):
            ...
    """
    AdapterRegistry.register(adapter_class)
    return adapter_class


def normalize(
    provider: Union[ProviderKind, str],
    record_kind: RecordKind,
    raw: Any,
    *,
    instance_id: Optional[str] = None,
):
    """Normalize one upstream record with the provider's adapter."""
    return AdapterRegistry.get(provider).normalize(record_kind, raw, instance_id=instance_id)
