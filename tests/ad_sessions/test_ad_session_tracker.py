"""Tests for the ad session trackers: single-use consume, expiry, sweeping."""
import re
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from storygate.services.ad_sessions.service import (
    AdSession,
    InMemoryAdSessionTracker,
    RedisAdSessionTracker,
    build_tracker,
    new_tracking_id,
)


class _Clock:
    def __init__(self):
        self.now = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


class TestInMemoryTracker(unittest.TestCase):
    def setUp(self):
        self.clock = _Clock()
        self.tracker = InMemoryAdSessionTracker(max_age_seconds=3600, clock=self.clock)

    def test_consume_is_single_shot(self):
        tid = self.tracker.create("n1", "u1", "android", "rewarded")
        session = self.tracker.consume(tid)
        self.assertIsNotNone(session)
        self.assertEqual(session.content_id, "n1")
        self.assertEqual(session.started_at, self.clock.now)
        self.assertIsNone(self.tracker.consume(tid))

    def test_unknown_id(self):
        self.assertIsNone(self.tracker.consume("nope"))

    def test_expired_session_not_returned(self):
        tid = self.tracker.create("n1", "u1", "android", "rewarded")
        self.clock.now += timedelta(hours=2)
        self.assertIsNone(self.tracker.consume(tid))
        self.assertEqual(len(self.tracker), 0)

    def test_sweep_removes_only_expired(self):
        self.tracker.create("old", "u1", "android", "rewarded")
        self.clock.now += timedelta(minutes=61)
        fresh = self.tracker.create("new", "u1", "android", "rewarded")

        self.assertEqual(self.tracker.sweep_expired(), 1)
        self.assertEqual(len(self.tracker), 1)
        self.assertEqual(self.tracker.consume(fresh).content_id, "new")

    def test_tracking_ids_are_unique_and_opaque(self):
        ids = {self.tracker.create("n1", "u1", "android", "rewarded") for _ in range(50)}
        self.assertEqual(len(ids), 50)
        for tid in ids:
            self.assertRegex(tid, re.compile(r"^[A-Za-z0-9_-]{43}$"))
        self.assertGreaterEqual(len(new_tracking_id()), 40)


class TestRedisTracker(unittest.TestCase):
    def setUp(self):
        self.clock = _Clock()
        self.client = MagicMock()
        self.tracker = RedisAdSessionTracker(client=self.client, max_age_seconds=3600, clock=self.clock)

    def test_create_sets_key_with_ttl(self):
        self.client.set.return_value = True
        tid = self.tracker.create("n1", "u1", "ios", "rewarded")

        key, raw = self.client.set.call_args.args
        self.assertEqual(key, f"ad_session:{tid}")
        self.assertEqual(self.client.set.call_args.kwargs, {"nx": True, "ex": 3600})
        self.assertEqual(AdSession.from_json(raw).user_id, "u1")

    def test_consume_uses_getdel(self):
        session = AdSession("t1", "n1", "u1", "ios", "rewarded", self.clock.now)
        self.client.getdel.return_value = session.to_json()

        self.assertEqual(self.tracker.consume("t1"), session)
        self.client.getdel.assert_called_once_with("ad_session:t1")

        self.client.getdel.return_value = None
        self.assertIsNone(self.tracker.consume("t1"))

    def test_sweep_deletes_expired_and_corrupt(self):
        old = AdSession("t1", "n1", "u1", "ios", "rewarded", self.clock.now - timedelta(hours=2))
        fresh = AdSession("t2", "n1", "u1", "ios", "rewarded", self.clock.now)
        values = {"ad_session:t1": old.to_json(), "ad_session:t2": fresh.to_json(), "ad_session:t3": "{bad"}
        self.client.scan_iter.return_value = list(values)
        self.client.get.side_effect = values.get
        self.client.delete.return_value = 1

        self.assertEqual(self.tracker.sweep_expired(), 2)
        deleted = {c.args[0] for c in self.client.delete.call_args_list}
        self.assertEqual(deleted, {"ad_session:t1", "ad_session:t3"})


class TestBuildTracker(unittest.TestCase):
    def test_memory_backend(self):
        self.assertIsInstance(build_tracker("memory"), InMemoryAdSessionTracker)

    def test_unknown_backend(self):
        with self.assertRaises(ValueError):
            build_tracker("memcached")
