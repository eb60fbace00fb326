"""
Error taxonomy of the monetization core.

Domain outcomes are returned inside result models (never raised); only
StorageError crosses service boundaries as an exception.
"""
from enum import Enum


class ErrorCode(str, Enum):
    INSUFFICIENT_FUNDS = "insufficient_funds"
    ALREADY_UNLOCKED = "already_unlocked"  # reported as success
    INVALID_TRACKING = "invalid_tracking"
    PLAYBACK_INCOMPLETE = "playback_incomplete"
    PLAYBACK_TOO_SHORT = "playback_too_short"
    PROVIDER_REJECTED = "provider_rejected"
    PROVIDER_TIMEOUT = "provider_timeout"
    UNKNOWN_PACKAGE = "unknown_package"
    RECEIPT_INVALID = "receipt_invalid"
    DUPLICATE_TRANSACTION = "duplicate_transaction"
    NOT_PAID_CONTENT = "not_paid_content"
    NOT_AD_CONTENT = "not_ad_content"
    STORAGE_FAILURE = "storage_failure"


class StorageError(Exception):
    """Persistence layer unreachable or failed mid-transaction. Safe to retry the request."""

    def __init__(self, operation: str, cause: Exception | None = None) -> None:
        super().__init__(f"storage failure during {operation}")
        self.operation = operation
        self.cause = cause


class ProviderTimeoutError(Exception):
    """An external ad/store provider did not answer in time (or its breaker is open)."""
