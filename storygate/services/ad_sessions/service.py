"""
Registry of in-flight rewarded-ad views keyed by a one-time tracking token.

Two backends share the AdSessionTracker interface:
- InMemoryAdSessionTracker: single process; swept by the in-process maintenance loop.
- RedisAdSessionTracker: shared between API workers; keys carry a TTL and Celery beat sweeps leftovers.
consume() is single-shot in both: the session is removed by the same call that returns it.
"""
from __future__ import annotations

import json
import logging
import secrets
import threading
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

import redis

from storygate.core.config import settings
from storygate.utils.metrics import ad_sessions_swept_total

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AdSession:
    tracking_id: str
    content_id: str
    user_id: str
    platform: str
    ad_type: str
    started_at: datetime

    def to_json(self) -> str:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        return json.dumps(data)

    @classmethod
    def from_json(cls, raw: str) -> "AdSession":
        data = json.loads(raw)
        data["started_at"] = datetime.fromisoformat(data["started_at"])
        return cls(**data)


def new_tracking_id() -> str:
    """256 bits from the OS CSPRNG; not derivable from content id or time."""
    return secrets.token_urlsafe(32)


class AdSessionTracker(ABC):
    def __init__(
        self,
        max_age_seconds: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.max_age = timedelta(
            seconds=settings.ad_session_max_age_seconds if max_age_seconds is None else max_age_seconds
        )
        self.clock = clock

    @abstractmethod
    def create(self, content_id: str, user_id: str, platform: str, ad_type: str) -> str:
        """Register a new ad view and return its tracking id."""

    @abstractmethod
    def consume(self, tracking_id: str) -> AdSession | None:
        """Remove and return the session; None if unknown, already consumed or expired."""

    @abstractmethod
    def sweep_expired(self) -> int:
        """Drop sessions older than max age; returns how many were removed."""

    def _new_session(self, content_id: str, user_id: str, platform: str, ad_type: str) -> AdSession:
        return AdSession(
            tracking_id=new_tracking_id(),
            content_id=content_id,
            user_id=user_id,
            platform=platform,
            ad_type=ad_type,
            started_at=self.clock(),
        )

    def _is_expired(self, session: AdSession, now: datetime) -> bool:
        return now - session.started_at > self.max_age


class InMemoryAdSessionTracker(AdSessionTracker):
    def __init__(self, max_age_seconds: int | None = None, clock: Callable[[], datetime] = utcnow) -> None:
        super().__init__(max_age_seconds, clock)
        self._sessions: dict[str, AdSession] = {}
        self._lock = threading.Lock()

    def create(self, content_id: str, user_id: str, platform: str, ad_type: str) -> str:
        session = self._new_session(content_id, user_id, platform, ad_type)
        with self._lock:
            self._sessions[session.tracking_id] = session
        logger.info(
            "ad_session_created",
            extra={"user_id": user_id, "content_id": content_id, "platform": platform, "ad_type": ad_type},
        )
        return session.tracking_id

    def consume(self, tracking_id: str) -> AdSession | None:
        with self._lock:
            session = self._sessions.pop(tracking_id, None)
        if session is None or self._is_expired(session, self.clock()):
            return None
        return session

    def sweep_expired(self) -> int:
        now = self.clock()
        with self._lock:
            stale = [tid for tid, s in self._sessions.items() if self._is_expired(s, now)]
            for tid in stale:
                del self._sessions[tid]
        if stale:
            ad_sessions_swept_total.inc(len(stale))
            logger.info("ad_sessions_swept", extra={"removed": len(stale)})
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


class RedisAdSessionTracker(AdSessionTracker):
    KEY_PREFIX = "ad_session:"

    def __init__(
        self,
        client: redis.Redis | None = None,
        max_age_seconds: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(max_age_seconds, clock)
        self.client = client or redis.Redis.from_url(settings.redis_url, decode_responses=True)

    def _key(self, tracking_id: str) -> str:
        return f"{self.KEY_PREFIX}{tracking_id}"

    def create(self, content_id: str, user_id: str, platform: str, ad_type: str) -> str:
        session = self._new_session(content_id, user_id, platform, ad_type)
        ttl = int(self.max_age.total_seconds())
        created = self.client.set(self._key(session.tracking_id), session.to_json(), nx=True, ex=ttl)
        if not created:
            # 256-bit collision: treat as a fault rather than overwrite a live session
            raise RuntimeError("tracking id collision")
        logger.info(
            "ad_session_created",
            extra={"user_id": user_id, "content_id": content_id, "platform": platform, "ad_type": ad_type},
        )
        return session.tracking_id

    def consume(self, tracking_id: str) -> AdSession | None:
        raw = self.client.getdel(self._key(tracking_id))
        if not raw:
            return None
        session = AdSession.from_json(raw)
        if self._is_expired(session, self.clock()):
            return None
        return session

    def sweep_expired(self) -> int:
        """TTL expires keys on its own; this removes entries whose TTL was lost (e.g. PERSIST, restore)."""
        now = self.clock()
        removed = 0
        for key in self.client.scan_iter(match=f"{self.KEY_PREFIX}*", count=500):
            raw = self.client.get(key)
            if not raw:
                continue
            try:
                session = AdSession.from_json(raw)
            except (ValueError, KeyError, TypeError):
                removed += self.client.delete(key)
                continue
            if self._is_expired(session, now):
                removed += self.client.delete(key)
        if removed:
            ad_sessions_swept_total.inc(removed)
            logger.info("ad_sessions_swept", extra={"removed": removed})
        return removed


def build_tracker(backend: str | None = None) -> AdSessionTracker:
    backend = (backend or settings.ad_session_backend).lower()
    if backend == "redis":
        return RedisAdSessionTracker()
    if backend == "memory":
        return InMemoryAdSessionTracker()
    raise ValueError(f"Unknown ad session backend: {backend}. Available: memory, redis")
