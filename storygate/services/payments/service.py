"""
PaymentVerificationService: validates store receipts for coin packages.

Responsibilities:
- catalog lookup (coin amounts come from the catalog, never from the receipt)
- store verification through the injected StoreProvider (canonical transaction id)
- replay rejection against the PurchaseLedger, keyed by the provider's id only
Crediting coins is the UnlockCoordinator's job.
"""
import logging

import pybreaker

from storygate.catalog.config import get_coin_package, get_coin_packages
from storygate.catalog.models import CoinPackage
from storygate.core.config import settings
from storygate.services.circuit_breaker import get_circuit_breaker, guarded_call
from storygate.services.errors import ErrorCode, ProviderTimeoutError
from storygate.services.providers.base import StoreProvider
from storygate.services.purchases.ledger import PurchaseLedger
from storygate.services.results import PaymentVerificationResult, failure
from storygate.utils.metrics import purchases_total

logger = logging.getLogger(__name__)


class PaymentVerificationService:
    def __init__(
        self,
        provider: StoreProvider,
        ledger: PurchaseLedger,
        breaker: pybreaker.CircuitBreaker | None = None,
        platforms: set[str] | None = None,
    ) -> None:
        self.provider = provider
        self.ledger = ledger
        self.breaker = breaker if breaker is not None else get_circuit_breaker("store_provider")
        self.platforms = platforms if platforms is not None else settings.store_platforms_set

    def list_packages(self) -> list[CoinPackage]:
        return get_coin_packages()

    def verify(self, platform: str, receipt: str, package_id: str) -> PaymentVerificationResult:
        package = get_coin_package(package_id)
        if package is None:
            return self._reject(ErrorCode.UNKNOWN_PACKAGE, f"unknown coin package '{package_id}'")

        if platform not in self.platforms or not self.provider.supports(platform):
            return self._reject(ErrorCode.RECEIPT_INVALID, f"unsupported platform '{platform}'")

        try:
            verification = guarded_call(self.breaker, self.provider.verify_receipt, platform, receipt)
        except ProviderTimeoutError:
            return self._reject(ErrorCode.PROVIDER_TIMEOUT, "store did not respond, try again")
        except Exception:
            logger.exception("receipt_verification_error", extra={"platform": platform, "package_id": package_id})
            return self._reject(ErrorCode.RECEIPT_INVALID, "receipt could not be verified")

        if not verification.valid or not verification.transaction_id:
            return self._reject(ErrorCode.RECEIPT_INVALID, verification.reason or "receipt rejected by store")

        if verification.product_id and verification.product_id != package.store_product_id:
            logger.warning(
                "receipt_product_mismatch",
                extra={"package_id": package_id, "transaction_id": verification.transaction_id},
            )
            return self._reject(ErrorCode.RECEIPT_INVALID, "receipt is for a different product")

        if self.ledger.contains(verification.transaction_id):
            return self._reject(
                ErrorCode.DUPLICATE_TRANSACTION,
                "transaction already processed",
                transaction_id=verification.transaction_id,
            )

        logger.info(
            "receipt_verified",
            extra={
                "platform": platform,
                "package_id": package_id,
                "transaction_id": verification.transaction_id,
                "coins": package.coins,
            },
        )
        return PaymentVerificationResult(
            success=True,
            message="receipt verified",
            transaction_id=verification.transaction_id,
            coins=package.coins,
            package_name=package.name,
        )

    @staticmethod
    def _reject(error: ErrorCode, message: str, **fields) -> PaymentVerificationResult:
        purchases_total.labels(status=error.value).inc()
        logger.warning("purchase_rejected", extra={"reason": error.value, **fields})
        return failure(PaymentVerificationResult, error, message, **fields)
