"""Tests for shared plumbing: keyed locks, provider calls and registry, JSON logging."""
import json
import logging
import threading
import time
import unittest

import pybreaker

from storygate.core.logging import JsonFormatter
from storygate.services.circuit_breaker import guarded_call
from storygate.services.errors import ProviderTimeoutError
from storygate.services.locks import KeyedLock
from storygate.services.providers.factory import ProviderFactory
from storygate.services.providers.sandbox import PassThroughAdProvider, SandboxStoreProvider


class TestKeyedLock(unittest.TestCase):
    def test_same_key_is_serialized(self):
        locks = KeyedLock()
        active, peak = [0], [0]
        guard = threading.Lock()

        def work():
            with locks.hold("u1"):
                with guard:
                    active[0] += 1
                    peak[0] = max(peak[0], active[0])
                time.sleep(0.01)
                with guard:
                    active[0] -= 1

        threads = [threading.Thread(target=work) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(peak[0], 1)
        self.assertEqual(len(locks), 0)

    def test_different_keys_do_not_block(self):
        locks = KeyedLock()
        with locks.hold("u1"):
            acquired = threading.Event()

            def other():
                with locks.hold("u2"):
                    acquired.set()

            t = threading.Thread(target=other)
            t.start()
            self.assertTrue(acquired.wait(1))
            t.join()


class TestGuardedCall(unittest.TestCase):
    def test_returns_value(self):
        breaker = pybreaker.CircuitBreaker(fail_max=10)
        self.assertEqual(guarded_call(breaker, lambda x: x * 2, 21, timeout=1), 42)

    def test_timeout(self):
        breaker = pybreaker.CircuitBreaker(fail_max=10)
        with self.assertRaises(ProviderTimeoutError):
            guarded_call(breaker, time.sleep, 0.5, timeout=0.05)

    def test_open_breaker_is_timeout(self):
        breaker = pybreaker.CircuitBreaker(fail_max=2, reset_timeout=60)
        calls = []

        def fail():
            calls.append(1)
            raise ConnectionError("down")

        with self.assertRaises(ConnectionError):
            guarded_call(breaker, fail, timeout=1)
        # second failure trips the breaker
        with self.assertRaises(ProviderTimeoutError):
            guarded_call(breaker, fail, timeout=1)
        with self.assertRaises(ProviderTimeoutError):
            guarded_call(breaker, fail, timeout=1)
        self.assertEqual(len(calls), 2)


class TestJsonFormatter(unittest.TestCase):
    def test_extra_fields(self):
        record = logging.LogRecord("storygate", logging.INFO, __file__, 1, "content_unlocked", None, None)
        record.user_id = "u1"
        record.price = 300
        record.ignored = "x"

        payload = json.loads(JsonFormatter().format(record))

        self.assertEqual(payload["message"], "content_unlocked")
        self.assertEqual(payload["user_id"], "u1")
        self.assertEqual(payload["price"], 300)
        self.assertNotIn("ignored", payload)


class TestProviderFactory(unittest.TestCase):
    def test_builtin_providers(self):
        self.assertIsInstance(ProviderFactory.create_ad_provider("PassThrough"), PassThroughAdProvider)
        self.assertIsInstance(ProviderFactory.create_store_provider("sandbox"), SandboxStoreProvider)

    def test_unknown_provider(self):
        with self.assertRaises(ValueError):
            ProviderFactory.create_store_provider("appstore")

    def test_register(self):
        class AppStoreProvider(SandboxStoreProvider):
            name = "appstore"

        ProviderFactory.register_store_provider("AppStore", AppStoreProvider)
        self.addCleanup(ProviderFactory.STORE_PROVIDERS.pop, "appstore")
        self.assertIsInstance(ProviderFactory.create_store_provider("appstore"), AppStoreProvider)
