"""
Factory for ad and store providers based on configuration.
"""
import logging
from typing import Optional

from storygate.services.providers.base import AdProvider, StoreProvider
from storygate.services.providers.sandbox import PassThroughAdProvider, SandboxStoreProvider

logger = logging.getLogger(__name__)


class ProviderFactory:
    """Registry of provider adapters. Real integrations register here."""

    AD_PROVIDERS: dict[str, type[AdProvider]] = {
        "passthrough": PassThroughAdProvider,
    }
    STORE_PROVIDERS: dict[str, type[StoreProvider]] = {
        "sandbox": SandboxStoreProvider,
    }

    @classmethod
    def register_ad_provider(cls, name: str, provider_class: type[AdProvider]) -> None:
        cls.AD_PROVIDERS[name.lower()] = provider_class

    @classmethod
    def register_store_provider(cls, name: str, provider_class: type[StoreProvider]) -> None:
        cls.STORE_PROVIDERS[name.lower()] = provider_class

    @classmethod
    def create_ad_provider(cls, provider_name: str, config: Optional[dict] = None) -> AdProvider:
        provider_class = cls.AD_PROVIDERS.get(provider_name.lower())
        if not provider_class:
            available = ", ".join(cls.AD_PROVIDERS.keys())
            raise ValueError(f"Unknown ad provider: {provider_name}. Available providers: {available}")
        logger.info(f"Creating ad provider: {provider_name}")
        return provider_class(config)

    @classmethod
    def create_store_provider(cls, provider_name: str, config: Optional[dict] = None) -> StoreProvider:
        provider_class = cls.STORE_PROVIDERS.get(provider_name.lower())
        if not provider_class:
            available = ", ".join(cls.STORE_PROVIDERS.keys())
            raise ValueError(f"Unknown store provider: {provider_name}. Available providers: {available}")
        logger.info(f"Creating store provider: {provider_name}")
        return provider_class(config)
