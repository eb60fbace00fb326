"""
Circuit breakers and time bounds for external provider calls (pybreaker).
State is kept in process memory, or in Redis (pybreaker.CircuitRedisStorage) when several API workers share it.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable

import pybreaker
import redis

from storygate.core.config import settings
from storygate.services.errors import ProviderTimeoutError
from storygate.utils.metrics import circuit_breaker_state


logger = logging.getLogger("circuit_breaker")


class CircuitBreakerListener(pybreaker.CircuitBreakerListener):
    """Listener for circuit breaker events (logging/metrics)."""

    def __init__(self, name: str) -> None:
        self.name = name

    def state_change(self, cb: pybreaker.CircuitBreaker, old_state, new_state) -> None:
        old_name = getattr(old_state, "name", old_state)
        new_name = getattr(new_state, "name", new_state)
        circuit_breaker_state.labels(name=self.name).set(1 if new_name == pybreaker.STATE_OPEN else 0)
        logger.warning(
            "circuit_breaker_state_change",
            extra={
                "breaker_name": self.name,
                "old_state": old_name,
                "new_state": new_name,
            },
        )

    def failure(self, cb: pybreaker.CircuitBreaker, exc: BaseException) -> None:
        logger.warning(
            "circuit_breaker_failure",
            extra={
                "breaker_name": self.name,
                "error": type(exc).__name__,
            },
        )


_breakers: dict[str, pybreaker.CircuitBreaker] = {}


def get_circuit_breaker(name: str) -> pybreaker.CircuitBreaker:
    """Get or create a circuit breaker by name."""
    if name not in _breakers:
        if settings.ad_session_backend == "redis":
            # shared across API workers; pybreaker expects a bytes (non-decoding) client
            storage = pybreaker.CircuitRedisStorage(
                pybreaker.STATE_CLOSED,
                redis.Redis.from_url(settings.redis_url),
                namespace=f"cb:{name}",
            )
        else:
            storage = pybreaker.CircuitMemoryStorage(pybreaker.STATE_CLOSED)
        _breakers[name] = pybreaker.CircuitBreaker(
            fail_max=settings.cb_failure_threshold,
            reset_timeout=settings.cb_open_seconds,
            state_storage=storage,
            listeners=[CircuitBreakerListener(name)],
            name=name,
        )
    return _breakers[name]


# Provider calls run here so a hung SDK call can be abandoned after the timeout.
_executor = ThreadPoolExecutor(max_workers=16, thread_name_prefix="provider")


def guarded_call(
    breaker: pybreaker.CircuitBreaker,
    func: Callable[..., Any],
    *args: Any,
    timeout: float | None = None,
    **kwargs: Any,
) -> Any:
    """
    Call func through the breaker with a hard time bound.
    Timeout or an open breaker raises ProviderTimeoutError; other exceptions propagate.
    """
    limit = settings.provider_timeout_seconds if timeout is None else timeout

    def bounded() -> Any:
        future = _executor.submit(func, *args, **kwargs)
        try:
            return future.result(timeout=limit)
        except FutureTimeout as e:
            future.cancel()
            raise ProviderTimeoutError(f"provider call exceeded {limit}s") from e

    try:
        return breaker.call(bounded)
    except pybreaker.CircuitBreakerError as e:
        raise ProviderTimeoutError(f"provider circuit '{breaker.name}' is open") from e

