"""Tests for build_services wiring: injected collaborators are used as given."""
from storygate.services.ad_sessions.service import InMemoryAdSessionTracker
from storygate.services.container import build_services
from storygate.services.entitlements.service import EntitlementStore
from storygate.services.locks import KeyedLock
from storygate.services.providers.sandbox import PassThroughAdProvider, SandboxStoreProvider


def test_empty_injected_tracker_is_kept(session_factory, catalog, clock):
    tracker = InMemoryAdSessionTracker(clock=clock)
    assert len(tracker) == 0

    svc = build_services(
        session_factory=session_factory,
        catalog=catalog,
        tracker=tracker,
        ad_provider=PassThroughAdProvider(),
        store_provider=SandboxStoreProvider(),
    )

    assert svc.tracker is tracker
    assert svc.ad_verification.tracker is tracker
    assert svc.ad_verification.clock is clock
    assert svc.coordinator.catalog is catalog


def test_empty_injected_locks_are_kept(session_factory):
    locks = KeyedLock()
    assert len(locks) == 0

    store = EntitlementStore(session_factory, locks=locks)

    assert store._locks is locks
