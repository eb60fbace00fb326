"""
UnlockCoordinator: the entry point used by the API and the playback gate.

check_access -> unlock_with_coins / unlock_with_ad -> EntitlementStore.
credit_from_purchase -> PaymentVerificationService -> PurchaseLedger -> EntitlementStore.

Domain outcomes come back as result models; StorageError is the only exception raised.
"""
import logging

from storygate.catalog.models import MonetizationType
from storygate.catalog.story import ContentCatalog
from storygate.core.config import settings
from storygate.services.ad_verification.service import AdVerificationService
from storygate.services.entitlements.service import EntitlementStore
from storygate.services.errors import ErrorCode, StorageError
from storygate.services.payments.service import PaymentVerificationService
from storygate.services.purchases.ledger import PurchaseLedger
from storygate.services.results import AccessDecision, PurchaseResult, UnlockResult, failure
from storygate.utils.metrics import purchases_total, unlock_rejected_total

logger = logging.getLogger(__name__)


class UnlockCoordinator:
    def __init__(
        self,
        store: EntitlementStore,
        catalog: ContentCatalog,
        ad_verification: AdVerificationService,
        payments: PaymentVerificationService,
        ledger: PurchaseLedger,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.ad_verification = ad_verification
        self.payments = payments
        self.ledger = ledger

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def check_access(self, user_id: str, content_id: str) -> AccessDecision:
        monetization = self.catalog.get_monetization(content_id)
        if monetization.type == MonetizationType.FREE:
            return AccessDecision(allowed=True, reason="free")
        if self.store.is_unlocked(user_id, content_id):
            return AccessDecision(allowed=True, reason="unlocked")
        return AccessDecision(allowed=False, reason=monetization.type.value, monetization=monetization)

    # ------------------------------------------------------------------
    # Unlocks
    # ------------------------------------------------------------------

    def unlock_with_coins(self, user_id: str, content_id: str) -> UnlockResult:
        monetization = self.catalog.get_monetization(content_id)
        if monetization.type != MonetizationType.PAID:
            return self._reject(ErrorCode.NOT_PAID_CONTENT, "content is not paid content", user_id, content_id)
        if not monetization.price or monetization.price <= 0:
            return self._reject(ErrorCode.NOT_PAID_CONTENT, "price not configured", user_id, content_id)
        return self.store.debit_and_unlock(user_id, content_id, monetization.price)

    def unlock_with_ad(self, user_id: str, content_id: str, tracking_id: str, completed: bool) -> UnlockResult:
        monetization = self.catalog.get_monetization(content_id)
        if monetization.type != MonetizationType.AD:
            return self._reject(ErrorCode.NOT_AD_CONTENT, "content is not ad content", user_id, content_id)
        if self.store.is_unlocked(user_id, content_id):
            # retry after a lost response: answer without spending another token
            return self.store.grant_unlock(user_id, content_id, method="ad")

        verification = self.ad_verification.verify_completion(
            tracking_id,
            completed,
            content_id=content_id,
            user_id=user_id,
        )
        if not verification.success:
            unlock_rejected_total.labels(reason=verification.error.value).inc()
            return failure(UnlockResult, verification.error, verification.message)
        return self.store.grant_unlock(user_id, content_id, method="ad")

    # ------------------------------------------------------------------
    # Purchases
    # ------------------------------------------------------------------

    def credit_from_purchase(self, user_id: str, platform: str, receipt: str, package_id: str) -> PurchaseResult:
        """
        Verify the receipt, record the transaction, credit the coins.
        The ledger insert is the authoritative replay check: of two concurrent requests for one
        transaction only one inserts. If crediting fails after the insert, the record is flagged
        reconciliation_pending for reconcile_pending() and StorageError is raised.
        """
        verification = self.payments.verify(platform, receipt, package_id)
        if not verification.success:
            return failure(
                PurchaseResult,
                verification.error,
                verification.message,
                transaction_id=verification.transaction_id,
            )

        entry = self.ledger.append(
            transaction_id=verification.transaction_id,
            user_id=user_id,
            package_id=package_id,
            coins_granted=verification.coins,
            platform=platform,
        )
        if entry is None:
            purchases_total.labels(status=ErrorCode.DUPLICATE_TRANSACTION.value).inc()
            return failure(
                PurchaseResult,
                ErrorCode.DUPLICATE_TRANSACTION,
                "transaction already processed",
                transaction_id=verification.transaction_id,
            )

        try:
            new_balance = self.store.settle_purchase(user_id, entry.transaction_id, entry.coins_granted)
        except StorageError:
            self._flag_for_reconciliation(entry.transaction_id)
            raise
        if new_balance is None:
            # Settled by reconciliation between our insert and now; nothing left to credit.
            new_balance = self.store.get_balance(user_id)

        purchases_total.labels(status="completed").inc()
        logger.info(
            "purchase_credited",
            extra={
                "user_id": user_id,
                "transaction_id": entry.transaction_id,
                "package_id": package_id,
                "coins": entry.coins_granted,
                "new_balance": new_balance,
            },
        )
        return PurchaseResult(
            success=True,
            message=f"credited {entry.coins_granted} coins",
            new_balance=new_balance,
            transaction_id=entry.transaction_id,
            package_name=verification.package_name,
        )

    def reconcile_pending(self, older_than_seconds: int | None = None) -> dict:
        """Credit every stale unsettled ledger record exactly once."""
        grace = settings.reconcile_grace_seconds if older_than_seconds is None else older_than_seconds
        settled, skipped, failed = 0, 0, 0
        for entry in self.ledger.list_unsettled(older_than_seconds=grace):
            try:
                balance = self.store.settle_purchase(
                    entry.user_id,
                    entry.transaction_id,
                    entry.coins_granted,
                    source="reconcile",
                )
            except StorageError:
                failed += 1
                continue
            if balance is None:
                skipped += 1
            else:
                settled += 1
        if settled or failed:
            logger.info(
                "purchases_reconciled",
                extra={"settled": settled, "skipped": skipped, "failed": failed},
            )
        return {"settled": settled, "skipped": skipped, "failed": failed}

    # ------------------------------------------------------------------
    # Admin / test operations
    # ------------------------------------------------------------------

    def get_user_info(self, user_id: str) -> dict:
        return self.store.get_user_info(user_id)

    def add_coins(self, user_id: str, amount: int) -> int:
        return self.store.credit(user_id, amount, source="admin")

    def reset_user(self, user_id: str) -> None:
        self.store.reset(user_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _flag_for_reconciliation(self, transaction_id: str) -> None:
        try:
            self.ledger.mark_reconciliation_pending(transaction_id)
        except StorageError:
            # Record stays "pending"; reconcile_pending() picks it up after the grace period.
            logger.error("purchase_flag_failed", extra={"transaction_id": transaction_id})

    @staticmethod
    def _reject(error: ErrorCode, message: str, user_id: str, content_id: str) -> UnlockResult:
        unlock_rejected_total.labels(reason=error.value).inc()
        logger.info("unlock_rejected", extra={"user_id": user_id, "content_id": content_id, "reason": error.value})
        return failure(UnlockResult, error, message)
