from storygate.services.providers.base import (
    AdProvider,
    Corroboration,
    LoadResult,
    ReceiptVerification,
    StoreProvider,
)
from storygate.services.providers.factory import ProviderFactory
from storygate.services.providers.sandbox import PassThroughAdProvider, SandboxStoreProvider

__all__ = [
    "AdProvider",
    "Corroboration",
    "LoadResult",
    "PassThroughAdProvider",
    "ProviderFactory",
    "ReceiptVerification",
    "SandboxStoreProvider",
    "StoreProvider",
]
