"""
AdVerificationService: hands out rewarded-ad configs and verifies that a view really completed.

verify_completion() consumes the tracking token first, so a token is never verified twice
whatever the outcome. The minimum watch time is checked against server time; the client's
"completed" flag alone never unlocks anything.
"""
import logging
from datetime import datetime, timezone
from typing import Callable

import pybreaker
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storygate.catalog.config import get_ad_placement
from storygate.db.session import SessionLocal
from storygate.models.ad_completion import AdCompletion
from storygate.services.ad_sessions.service import AdSession, AdSessionTracker
from storygate.services.circuit_breaker import get_circuit_breaker, guarded_call
from storygate.services.errors import ErrorCode, ProviderTimeoutError, StorageError
from storygate.services.providers.base import AdProvider
from storygate.services.results import AdOffer, AdVerificationResult, failure
from storygate.utils.metrics import ad_verifications_total

logger = logging.getLogger(__name__)

# Minimum watch time when a session's placement has been removed from config since it started
DEFAULT_MIN_DURATION_SECONDS = 15


class AdVerificationService:
    def __init__(
        self,
        tracker: AdSessionTracker,
        provider: AdProvider,
        session_factory: Callable[[], Session] = SessionLocal,
        clock: Callable[[], datetime] | None = None,
        breaker: pybreaker.CircuitBreaker | None = None,
    ) -> None:
        self.tracker = tracker
        self.provider = provider
        self._session_factory = session_factory
        self.clock = clock if clock is not None else tracker.clock
        self.breaker = breaker if breaker is not None else get_circuit_breaker("ad_provider")

    # ------------------------------------------------------------------
    # Ad request
    # ------------------------------------------------------------------

    def request_ad(self, content_id: str, user_id: str, platform: str, ad_type: str = "rewarded") -> AdOffer | None:
        """Ask the provider for a fill and open a tracked session. None = no ad available."""
        placement = get_ad_placement(platform, ad_type)
        if placement is None:
            logger.warning("ad_placement_not_configured", extra={"platform": platform, "ad_type": ad_type})
            return None

        try:
            loaded = guarded_call(self.breaker, self.provider.load, placement)
        except ProviderTimeoutError:
            logger.warning("ad_load_timeout", extra={"platform": platform, "ad_type": ad_type})
            return None
        if not loaded.success:
            logger.warning(
                "ad_load_failed",
                extra={"platform": platform, "ad_type": ad_type, "reason": loaded.message},
            )
            return None

        tracking_id = self.tracker.create(content_id, user_id, platform, ad_type)
        return AdOffer(
            tracking_id=tracking_id,
            ad_unit_id=placement.ad_unit_id,
            ad_type=ad_type,
            provider=placement.provider,
            duration=placement.duration,
            reward_type=placement.reward_type,
        )

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_completion(
        self,
        tracking_id: str,
        client_reported_completed: bool,
        *,
        content_id: str | None = None,
        user_id: str | None = None,
    ) -> AdVerificationResult:
        """
        Steps:
        1. consume the session (InvalidTracking if absent, or bound to another node/user)
        2. server-side elapsed time vs placement minimum (PlaybackTooShort)
        3. client completion flag (PlaybackIncomplete)
        4. provider corroboration (ProviderRejected / ProviderTimeout)
        5. completion log row; a failed write does not fail the verification
        """
        session = self.tracker.consume(tracking_id)
        if session is None:
            return self._reject(ErrorCode.INVALID_TRACKING, "invalid or expired tracking id")
        if (content_id is not None and session.content_id != content_id) or (
            user_id is not None and session.user_id != user_id
        ):
            logger.warning(
                "ad_tracking_mismatch",
                extra={"user_id": user_id, "content_id": content_id},
            )
            return self._reject(ErrorCode.INVALID_TRACKING, "tracking id does not match this content")

        elapsed_ms = int((self.clock() - session.started_at).total_seconds() * 1000)
        required_ms = self._required_seconds(session) * 1000
        if elapsed_ms < required_ms:
            logger.warning(
                "ad_playback_too_short",
                extra={
                    "user_id": session.user_id,
                    "content_id": session.content_id,
                    "elapsed_ms": elapsed_ms,
                    "required_ms": required_ms,
                },
            )
            return self._reject(
                ErrorCode.PLAYBACK_TOO_SHORT,
                f"ad not watched long enough, need {required_ms // 1000}s",
                session,
                elapsed_ms,
            )

        if not client_reported_completed:
            return self._reject(ErrorCode.PLAYBACK_INCOMPLETE, "ad playback not completed", session, elapsed_ms)

        try:
            corroboration = guarded_call(self.breaker, self.provider.corroborate, tracking_id, session)
        except ProviderTimeoutError:
            return self._reject(ErrorCode.PROVIDER_TIMEOUT, "ad network did not respond, try again", session, elapsed_ms)
        except Exception:
            logger.exception("ad_corroboration_error", extra={"content_id": session.content_id})
            return self._reject(ErrorCode.PROVIDER_REJECTED, "ad network rejected the view", session, elapsed_ms)
        if not corroboration.valid:
            return self._reject(
                ErrorCode.PROVIDER_REJECTED,
                corroboration.reason or "ad network rejected the view",
                session,
                elapsed_ms,
            )

        self._log_completion(session, elapsed_ms)
        ad_verifications_total.labels(outcome="verified").inc()
        logger.info(
            "ad_verified",
            extra={
                "user_id": session.user_id,
                "content_id": session.content_id,
                "platform": session.platform,
                "elapsed_ms": elapsed_ms,
            },
        )
        return AdVerificationResult(
            success=True,
            message="ad view verified",
            content_id=session.content_id,
            elapsed_ms=elapsed_ms,
        )

    def get_ad_stats(self) -> dict:
        """Verified views by platform and by content id."""
        db = self._session_factory()
        try:
            by_platform = dict(
                db.execute(
                    select(AdCompletion.platform, func.count(AdCompletion.id)).group_by(AdCompletion.platform)
                ).all()
            )
            by_content = dict(
                db.execute(
                    select(AdCompletion.content_id, func.count(AdCompletion.id)).group_by(AdCompletion.content_id)
                ).all()
            )
        except SQLAlchemyError as e:
            logger.exception("ad_stats_storage_failure")
            raise StorageError("get_ad_stats", e) from e
        finally:
            db.close()
        return {
            "total_ads": sum(by_platform.values()),
            "by_platform": by_platform,
            "by_content": by_content,
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _required_seconds(session: AdSession) -> int:
        placement = get_ad_placement(session.platform, session.ad_type)
        return placement.duration if placement else DEFAULT_MIN_DURATION_SECONDS

    def _log_completion(self, session: AdSession, elapsed_ms: int) -> None:
        db = self._session_factory()
        try:
            db.add(
                AdCompletion(
                    content_id=session.content_id,
                    user_id=session.user_id,
                    platform=session.platform,
                    ad_type=session.ad_type,
                    duration_ms=elapsed_ms,
                    created_at=datetime.now(timezone.utc),
                )
            )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.warning("ad_completion_log_failed", exc_info=True, extra={"content_id": session.content_id})
        finally:
            db.close()

    @staticmethod
    def _reject(
        error: ErrorCode,
        message: str,
        session: AdSession | None = None,
        elapsed_ms: int | None = None,
    ) -> AdVerificationResult:
        ad_verifications_total.labels(outcome=error.value).inc()
        logger.info("ad_verification_rejected", extra={"reason": error.value})
        return failure(
            AdVerificationResult,
            error,
            message,
            content_id=session.content_id if session else None,
            elapsed_ms=elapsed_ms,
        )
