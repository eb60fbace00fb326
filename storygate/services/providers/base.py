"""
Base classes and types for the external capabilities the monetization core calls through:
an ad SDK (AdProvider) and platform store receipt verification (StoreProvider).

Real integrations (AdMob / Pangle server-side verification, App Store verifyReceipt,
Google Play Developer API) subclass these and register in factory.py. They may block
on network I/O; callers bound every call with guarded_call().
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from storygate.catalog.models import AdPlacement


@dataclass
class LoadResult:
    """Outcome of asking the ad SDK for a fill."""
    success: bool
    message: str = ""


@dataclass
class Corroboration:
    """Server-side confirmation that a rewarded view really completed."""
    valid: bool
    reason: str | None = None


@dataclass
class ReceiptVerification:
    """Store answer for a receipt. transaction_id is the store's canonical id."""
    valid: bool
    transaction_id: str | None = None
    product_id: str | None = None
    reason: str | None = None


class AdProvider(ABC):
    """Base class for ad SDK adapters."""

    name = "abstract"

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        self.config = config or {}

    @abstractmethod
    def load(self, placement: AdPlacement) -> LoadResult:
        """Request an ad fill for the placement."""
        pass

    @abstractmethod
    def corroborate(self, tracking_id: str, session: Any) -> Corroboration:
        """Confirm the view identified by tracking_id (an AdSession) with the ad network."""
        pass


class StoreProvider(ABC):
    """Base class for store receipt verification adapters."""

    name = "abstract"

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        self.config = config or {}

    def supports(self, platform: str) -> bool:
        return True

    @abstractmethod
    def verify_receipt(self, platform: str, receipt: str) -> ReceiptVerification:
        """Verify a receipt server-to-server and return the canonical transaction id."""
        pass
