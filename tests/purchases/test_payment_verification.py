"""Tests for PaymentVerificationService: catalog lookup, receipt checks, replay rejection."""
from unittest.mock import MagicMock, patch

import pybreaker
import pytest

from storygate.services.errors import ErrorCode, ProviderTimeoutError
from storygate.services.payments.service import PaymentVerificationService
from storygate.services.providers.base import ReceiptVerification
from storygate.services.providers.sandbox import SandboxStoreProvider
from storygate.services.purchases.ledger import PurchaseLedger


@pytest.fixture
def ledger(session_factory):
    return PurchaseLedger(session_factory)


def _service(ledger, provider=None):
    return PaymentVerificationService(
        provider or SandboxStoreProvider(),
        ledger,
        breaker=pybreaker.CircuitBreaker(fail_max=1000),
        platforms={"ios", "android", "windows"},
    )


class TestVerify:
    def test_coins_come_from_catalog(self, ledger):
        result = _service(ledger).verify("ios", "receipt-1", "pack_500")
        assert result.success is True
        assert result.coins == 500
        assert result.transaction_id.startswith("ios-")

    def test_unknown_package(self, ledger):
        result = _service(ledger).verify("ios", "receipt-1", "pack_7")
        assert result.error == ErrorCode.UNKNOWN_PACKAGE

    def test_unsupported_platform(self, ledger):
        result = _service(ledger).verify("dreamcast", "receipt-1", "pack_500")
        assert result.error == ErrorCode.RECEIPT_INVALID

    def test_empty_receipt(self, ledger):
        result = _service(ledger).verify("ios", "  ", "pack_500")
        assert result.error == ErrorCode.RECEIPT_INVALID

    def test_product_mismatch(self, ledger):
        provider = MagicMock()
        provider.supports.return_value = True
        provider.verify_receipt.return_value = ReceiptVerification(
            valid=True, transaction_id="tx1", product_id="com.storygate.coins.100"
        )
        result = _service(ledger, provider).verify("ios", "r", "pack_5000")
        assert result.error == ErrorCode.RECEIPT_INVALID

    def test_provider_error_is_invalid_receipt(self, ledger):
        provider = MagicMock()
        provider.supports.return_value = True
        provider.verify_receipt.side_effect = RuntimeError("store down")
        result = _service(ledger, provider).verify("ios", "r", "pack_500")
        assert result.error == ErrorCode.RECEIPT_INVALID

    def test_provider_timeout(self, ledger):
        with patch(
            "storygate.services.payments.service.guarded_call",
            side_effect=ProviderTimeoutError("slow"),
        ):
            result = _service(ledger).verify("ios", "r", "pack_500")
        assert result.error == ErrorCode.PROVIDER_TIMEOUT

    def test_replay_rejected_by_provider_transaction_id(self, ledger):
        svc = _service(ledger)
        first = svc.verify("ios", "receipt-1", "pack_500")
        ledger.append(first.transaction_id, "u1", "pack_500", first.coins, "ios")

        second = svc.verify("ios", "receipt-1", "pack_500")
        assert second.error == ErrorCode.DUPLICATE_TRANSACTION
        assert second.transaction_id == first.transaction_id

    def test_list_packages(self, ledger):
        ids = [p.package_id for p in _service(ledger).list_packages()]
        assert ids == ["pack_100", "pack_500", "pack_1000", "pack_5000"]
