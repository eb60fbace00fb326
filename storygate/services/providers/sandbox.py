"""
Pass-through providers for local runs and tests. No network calls.
"""
import hashlib
from typing import Any

from storygate.catalog.models import AdPlacement
from storygate.services.providers.base import (
    AdProvider,
    Corroboration,
    LoadResult,
    ReceiptVerification,
    StoreProvider,
)


class PassThroughAdProvider(AdProvider):
    """Always fills and always corroborates."""

    name = "passthrough"

    def load(self, placement: AdPlacement) -> LoadResult:
        return LoadResult(success=True, message="ad loaded")

    def corroborate(self, tracking_id: str, session: Any) -> Corroboration:
        return Corroboration(valid=True)


class SandboxStoreProvider(StoreProvider):
    """
    Accepts any non-empty receipt. The transaction id is derived from (platform, receipt),
    so replaying the same receipt resolves to the same transaction, as a real store would.
    """

    name = "sandbox"

    def verify_receipt(self, platform: str, receipt: str) -> ReceiptVerification:
        if not receipt or not receipt.strip():
            return ReceiptVerification(valid=False, reason="empty receipt")
        digest = hashlib.sha256(f"{platform}:{receipt}".encode("utf-8")).hexdigest()
        return ReceiptVerification(valid=True, transaction_id=f"{platform}-{digest[:32]}")
