"""Tests for AdVerificationService: anti-cheat duration check, single-use tokens, provider outcomes."""
from unittest.mock import MagicMock, patch

from sqlalchemy.exc import OperationalError

from storygate.services.errors import ErrorCode, ProviderTimeoutError
from storygate.services.providers.base import Corroboration, LoadResult


class TestRequestAd:
    def test_offer_for_configured_placement(self, make_ad_verification, tracker):
        svc = make_ad_verification()
        offer = svc.request_ad("ad_scene", "u1", "android", "rewarded")

        assert offer is not None
        assert offer.duration == 30
        assert offer.provider == "admob"
        assert len(tracker) == 1

    def test_unknown_placement_returns_none(self, make_ad_verification, tracker):
        svc = make_ad_verification()
        assert svc.request_ad("ad_scene", "u1", "windows", "interstitial") is None
        assert len(tracker) == 0

    def test_no_fill_returns_none(self, make_ad_verification, tracker):
        provider = MagicMock()
        provider.load.return_value = LoadResult(success=False, message="no fill")
        svc = make_ad_verification(provider)

        assert svc.request_ad("ad_scene", "u1", "android") is None
        assert len(tracker) == 0


class TestVerifyCompletion:
    def test_scenario_too_short_then_invalid(self, make_ad_verification, clock):
        svc = make_ad_verification()
        offer = svc.request_ad("ad_scene", "u1", "android", "rewarded")
        clock.advance(10)

        first = svc.verify_completion(offer.tracking_id, True)
        assert first.success is False
        assert first.error == ErrorCode.PLAYBACK_TOO_SHORT
        assert "30s" in first.message

        second = svc.verify_completion(offer.tracking_id, True)
        assert second.error == ErrorCode.INVALID_TRACKING

    def test_too_short_regardless_of_client_flag(self, make_ad_verification, clock):
        svc = make_ad_verification()
        offer = svc.request_ad("ad_scene", "u1", "android")
        clock.advance(29.9)

        result = svc.verify_completion(offer.tracking_id, False)
        assert result.error == ErrorCode.PLAYBACK_TOO_SHORT

    def test_incomplete_after_enough_time(self, make_ad_verification, clock):
        svc = make_ad_verification()
        offer = svc.request_ad("ad_scene", "u1", "android")
        clock.advance(31)

        result = svc.verify_completion(offer.tracking_id, False)
        assert result.error == ErrorCode.PLAYBACK_INCOMPLETE

    def test_success_logs_completion(self, make_ad_verification, clock):
        svc = make_ad_verification()
        offer = svc.request_ad("ad_scene", "u1", "android")
        clock.advance(31)

        result = svc.verify_completion(offer.tracking_id, True, content_id="ad_scene", user_id="u1")
        assert result.success is True
        assert result.elapsed_ms == 31000

        stats = svc.get_ad_stats()
        assert stats == {"total_ads": 1, "by_platform": {"android": 1}, "by_content": {"ad_scene": 1}}

    def test_token_bound_to_content(self, make_ad_verification, clock):
        svc = make_ad_verification()
        offer = svc.request_ad("ad_scene", "u1", "android")
        clock.advance(31)

        result = svc.verify_completion(offer.tracking_id, True, content_id="other_scene", user_id="u1")
        assert result.error == ErrorCode.INVALID_TRACKING
        # consumed even though it was rejected
        assert svc.verify_completion(offer.tracking_id, True).error == ErrorCode.INVALID_TRACKING

    def test_provider_rejects(self, make_ad_verification, clock):
        provider = MagicMock()
        provider.load.return_value = LoadResult(success=True)
        provider.corroborate.return_value = Corroboration(valid=False, reason="fraud suspected")
        svc = make_ad_verification(provider)
        offer = svc.request_ad("ad_scene", "u1", "android")
        clock.advance(31)

        result = svc.verify_completion(offer.tracking_id, True)
        assert result.error == ErrorCode.PROVIDER_REJECTED
        assert result.message == "fraud suspected"

    def test_provider_exception_is_rejection(self, make_ad_verification, clock):
        provider = MagicMock()
        provider.load.return_value = LoadResult(success=True)
        provider.corroborate.side_effect = ConnectionError("reset")
        svc = make_ad_verification(provider)
        offer = svc.request_ad("ad_scene", "u1", "android")
        clock.advance(31)

        assert svc.verify_completion(offer.tracking_id, True).error == ErrorCode.PROVIDER_REJECTED

    def test_provider_timeout(self, make_ad_verification, clock):
        svc = make_ad_verification()
        offer = svc.request_ad("ad_scene", "u1", "android")
        clock.advance(31)

        with patch(
            "storygate.services.ad_verification.service.guarded_call",
            side_effect=ProviderTimeoutError("slow"),
        ):
            result = svc.verify_completion(offer.tracking_id, True)
        assert result.error == ErrorCode.PROVIDER_TIMEOUT

    def test_completion_log_failure_does_not_fail(self, make_ad_verification, clock, tracker):
        svc = make_ad_verification()
        offer = svc.request_ad("ad_scene", "u1", "android")
        clock.advance(31)

        broken = MagicMock()
        broken.commit.side_effect = OperationalError("INSERT", {}, Exception("locked"))
        svc._session_factory = lambda: broken

        result = svc.verify_completion(offer.tracking_id, True)
        assert result.success is True
        broken.rollback.assert_called_once()
