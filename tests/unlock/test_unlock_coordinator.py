"""Tests for UnlockCoordinator: access checks, coin/ad unlocks, purchase crediting and reconciliation."""
from unittest.mock import patch

import pytest
from prometheus_client import REGISTRY

from storygate.models.purchase import STATUS_COMPLETED, STATUS_RECONCILIATION_PENDING
from storygate.services.errors import ErrorCode, StorageError
from storygate.services.providers.sandbox import SandboxStoreProvider


def _tx(platform, receipt):
    return SandboxStoreProvider().verify_receipt(platform, receipt).transaction_id


class TestCheckAccess:
    def test_free_node(self, services):
        decision = services.coordinator.check_access("u1", "intro")
        assert decision.allowed is True
        assert decision.reason == "free"

    def test_unknown_node_is_free(self, services):
        assert services.coordinator.check_access("u1", "nowhere").allowed is True

    def test_locked_paid_node_carries_price(self, services):
        decision = services.coordinator.check_access("u1", "paid_scene")
        assert decision.allowed is False
        assert decision.reason == "paid"
        assert decision.monetization.price == 300

    def test_unlocked_node(self, services):
        services.coordinator.unlock_with_coins("u1", "paid_scene")
        decision = services.coordinator.check_access("u1", "paid_scene")
        assert decision.allowed is True
        assert decision.reason == "unlocked"


class TestUnlockWithCoins:
    def test_scenario(self, services):
        result = services.coordinator.unlock_with_coins("u1", "paid_scene")
        assert result.success and result.balance == 700
        again = services.coordinator.unlock_with_coins("u1", "paid_scene")
        assert again.already_unlocked and again.balance == 700
        assert services.coordinator.get_user_info("u1")["unlocked_content_ids"] == ["paid_scene"]

    def test_not_paid_content(self, services):
        assert services.coordinator.unlock_with_coins("u1", "ad_scene").error == ErrorCode.NOT_PAID_CONTENT
        assert services.coordinator.unlock_with_coins("u1", "intro").error == ErrorCode.NOT_PAID_CONTENT

    def test_missing_price(self, services):
        result = services.coordinator.unlock_with_coins("u1", "broken_paid")
        assert result.error == ErrorCode.NOT_PAID_CONTENT
        assert result.message == "price not configured"


class TestUnlockWithAd:
    def test_verified_view_unlocks(self, services, clock):
        offer = services.ad_verification.request_ad("ad_scene", "u1", "windows")
        clock.advance(6)
        result = services.coordinator.unlock_with_ad("u1", "ad_scene", offer.tracking_id, True)
        assert result.success is True
        assert services.store.is_unlocked("u1", "ad_scene")
        assert services.store.get_balance("u1") == 1000

    def test_not_ad_content(self, services):
        result = services.coordinator.unlock_with_ad("u1", "paid_scene", "t", True)
        assert result.error == ErrorCode.NOT_AD_CONTENT

    def test_failed_verification_does_not_unlock(self, services, clock):
        offer = services.ad_verification.request_ad("ad_scene", "u1", "windows")
        clock.advance(1)
        result = services.coordinator.unlock_with_ad("u1", "ad_scene", offer.tracking_id, True)
        assert result.error == ErrorCode.PLAYBACK_TOO_SHORT
        assert not services.store.is_unlocked("u1", "ad_scene")

    def test_retry_after_unlock_answers_already_unlocked(self, services, clock):
        offer = services.ad_verification.request_ad("ad_scene", "u1", "windows")
        clock.advance(6)
        first = services.coordinator.unlock_with_ad("u1", "ad_scene", offer.tracking_id, True)
        assert first.success is True

        retry = services.coordinator.unlock_with_ad("u1", "ad_scene", offer.tracking_id, True)
        assert retry.success is True
        assert retry.already_unlocked is True
        assert retry.balance == 1000

    def test_already_unlocked_does_not_consume_token(self, services):
        services.store.grant_unlock("u1", "ad_scene", method="admin")
        offer = services.ad_verification.request_ad("ad_scene", "u1", "windows")
        result = services.coordinator.unlock_with_ad("u1", "ad_scene", offer.tracking_id, True)
        assert result.already_unlocked is True
        assert services.tracker.consume(offer.tracking_id) is not None


class TestCreditFromPurchase:
    def test_scenario_pack_500(self, services):
        result = services.coordinator.credit_from_purchase("u1", "ios", "receipt-abc", "pack_500")
        assert result.success is True
        assert result.new_balance == 1500
        assert services.ledger.stats()["total_purchases"] == 1
        assert services.ledger.get(result.transaction_id).status == STATUS_COMPLETED

        replay = services.coordinator.credit_from_purchase("u1", "ios", "receipt-abc", "pack_500")
        assert replay.error == ErrorCode.DUPLICATE_TRANSACTION
        assert services.store.get_balance("u1") == 1500

    def test_ledger_insert_race_reports_duplicate(self, services):
        services.ledger.append(_tx("ios", "r1"), "u2", "pack_100", 100, "ios")
        with patch.object(services.ledger, "contains", return_value=False):
            result = services.coordinator.credit_from_purchase("u1", "ios", "r1", "pack_100")
        assert result.error == ErrorCode.DUPLICATE_TRANSACTION
        assert services.store.get_balance("u1") == 1000

    def test_credit_failure_flags_and_reconciles_once(self, services):
        with patch.object(services.store, "settle_purchase", side_effect=StorageError("settle_purchase")):
            with pytest.raises(StorageError):
                services.coordinator.credit_from_purchase("u1", "android", "r2", "pack_100")

        tx = _tx("android", "r2")
        assert services.ledger.get(tx).status == STATUS_RECONCILIATION_PENDING
        assert services.store.get_balance("u1") == 1000

        assert services.coordinator.reconcile_pending(older_than_seconds=0) == {
            "settled": 1,
            "skipped": 0,
            "failed": 0,
        }
        assert services.store.get_balance("u1") == 1100
        assert services.coordinator.reconcile_pending(older_than_seconds=0)["settled"] == 0
        assert services.store.get_balance("u1") == 1100

    def test_reconcile_credits_under_reconcile_source(self, services):
        with patch.object(services.store, "settle_purchase", side_effect=StorageError("settle_purchase")):
            with pytest.raises(StorageError):
                services.coordinator.credit_from_purchase("u1", "android", "r3", "pack_100")

        before = REGISTRY.get_sample_value("coins_credited_total", {"source": "reconcile"}) or 0.0
        with patch.object(services.store, "settle_purchase", wraps=services.store.settle_purchase) as settle:
            services.coordinator.reconcile_pending(older_than_seconds=0)
        assert settle.call_args.kwargs["source"] == "reconcile"
        after = REGISTRY.get_sample_value("coins_credited_total", {"source": "reconcile"})
        assert after - before == 100


class TestAdmin:
    def test_add_coins_and_reset(self, services):
        assert services.coordinator.add_coins("u1", 50) == 1050
        services.coordinator.reset_user("u1")
        assert services.coordinator.get_user_info("u1")["coins"] == 1000
