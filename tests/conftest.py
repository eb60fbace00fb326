"""Shared fixtures: a throwaway SQLite database per test and a small story catalog."""
from datetime import datetime, timedelta, timezone

import pybreaker
import pytest
from sqlalchemy.orm import sessionmaker

from storygate.catalog.story import ContentCatalog, StoryGraph
from storygate.db.session import build_engine, init_db
from storygate.services.ad_sessions.service import InMemoryAdSessionTracker
from storygate.services.ad_verification.service import AdVerificationService
from storygate.services.container import build_services
from storygate.services.providers.sandbox import PassThroughAdProvider, SandboxStoreProvider


def story_data() -> dict:
    return {
        "startNodeId": "intro",
        "nodes": {
            "intro": {"title": "Intro", "options": [{"id": "o1", "label": "Go", "targetId": "paid_scene"}]},
            "paid_scene": {"title": "Paid", "monetization": {"type": "paid", "price": 300}},
            "ad_scene": {"title": "Ad", "monetization": {"type": "ad", "adDescription": "Watch a short ad"}},
            "broken_paid": {"title": "No price", "monetization": {"type": "paid"}},
        },
    }


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def session_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'storygate.db'}")
    init_db(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture
def catalog():
    return ContentCatalog(StoryGraph.from_dict(story_data()))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tracker(clock):
    return InMemoryAdSessionTracker(clock=clock)


@pytest.fixture
def services(session_factory, catalog, tracker):
    svc = build_services(
        session_factory=session_factory,
        catalog=catalog,
        tracker=tracker,
        ad_provider=PassThroughAdProvider(),
        store_provider=SandboxStoreProvider(),
    )
    # breakers are process-wide; tests get their own
    svc.ad_verification.breaker = pybreaker.CircuitBreaker(fail_max=1000)
    svc.payments.breaker = pybreaker.CircuitBreaker(fail_max=1000)
    return svc


@pytest.fixture
def make_ad_verification(session_factory, tracker):
    def _make(provider=None):
        return AdVerificationService(
            tracker,
            provider or PassThroughAdProvider(),
            session_factory=session_factory,
            breaker=pybreaker.CircuitBreaker(fail_max=1000),
        )

    return _make
