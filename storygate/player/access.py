"""
How the playback gate reaches the monetization backend.

CoordinatorAccessChecker calls an in-process UnlockCoordinator (editor preview, tests);
HttpAccessChecker talks to the monetization API (packaged players).
"""
import asyncio
from typing import Protocol

from storygate.services.results import AccessDecision, UnlockResult
from storygate.services.unlock.service import UnlockCoordinator


class AccessChecker(Protocol):
    async def check_access(self, user_id: str, content_id: str) -> AccessDecision: ...

    async def unlock_with_coins(self, user_id: str, content_id: str) -> UnlockResult: ...

    async def unlock_with_ad(
        self, user_id: str, content_id: str, tracking_id: str, completed: bool
    ) -> UnlockResult: ...


class CoordinatorAccessChecker:
    """Runs the (blocking) coordinator calls in a worker thread."""

    def __init__(self, coordinator: UnlockCoordinator) -> None:
        self.coordinator = coordinator

    async def check_access(self, user_id: str, content_id: str) -> AccessDecision:
        return await asyncio.to_thread(self.coordinator.check_access, user_id, content_id)

    async def unlock_with_coins(self, user_id: str, content_id: str) -> UnlockResult:
        return await asyncio.to_thread(self.coordinator.unlock_with_coins, user_id, content_id)

    async def unlock_with_ad(
        self, user_id: str, content_id: str, tracking_id: str, completed: bool
    ) -> UnlockResult:
        return await asyncio.to_thread(
            self.coordinator.unlock_with_ad, user_id, content_id, tracking_id, completed
        )
