"""
PlaybackGate: drives one viewer through the story graph.

Node entry asks the backend for access; a locked node waits in LOCKED until an
unlock succeeds and runs no timers meanwhile. Once playing, the decision window
opens after a fixed delay (static content) or when timed media nears its end.
The countdown auto-selects the default option on expiry.

Timers are asyncio tasks tied to the node they were started for; entering another
node or closing the gate cancels them. A timer callback that raises (an access check
failing during auto-advance, say) ends playback and leaves the exception in `error`.
"""
import asyncio
import logging
from enum import Enum
from typing import Callable

from storygate.catalog.models import ContentMonetization
from storygate.catalog.story import StoryGraph, StoryNode, StoryOption
from storygate.player.access import AccessChecker
from storygate.services.results import UnlockResult

logger = logging.getLogger(__name__)

STATIC_DECISION_DELAY_SECONDS = 3.0


class GateState(str, Enum):
    IDLE = "idle"
    LOCKED = "locked"
    UNLOCKING = "unlocking"
    PLAYING = "playing"
    DECISION_WINDOW = "decision_window"
    TRANSITIONING = "transitioning"
    ENDED = "ended"
    CLOSED = "closed"


def default_option(node: StoryNode) -> StoryOption | None:
    """Option taken when the countdown expires: first flagged default, else the first one."""
    for option in node.options:
        if option.is_default:
            return option
    return node.options[0] if node.options else None


class PlaybackGate:
    def __init__(
        self,
        graph: StoryGraph,
        checker: AccessChecker,
        user_id: str,
        static_decision_delay: float = STATIC_DECISION_DELAY_SECONDS,
        on_state_change: Callable[[GateState, StoryNode | None], None] | None = None,
    ) -> None:
        self.graph = graph
        self.checker = checker
        self.user_id = user_id
        self.static_decision_delay = static_decision_delay
        self.on_state_change = on_state_change

        self.state = GateState.IDLE
        self.node: StoryNode | None = None
        self.monetization: ContentMonetization | None = None
        self.selected: StoryOption | None = None
        self._epoch = 0
        self._tasks: set[asyncio.Task] = set()
        self._deadline: float | None = None
        self.error: Exception | None = None

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    async def start(self, node_id: str | None = None) -> None:
        start_id = node_id or self.graph.start_node_id
        if start_id is None and self.graph.nodes:
            start_id = next(iter(self.graph.nodes))
        if start_id is None:
            self._set_state(GateState.ENDED)
            return
        await self.enter(start_id)

    async def enter(self, node_id: str) -> None:
        """Enter a node. Unknown ids end playback."""
        if self.closed:
            return
        self._cancel_timers()
        self._epoch += 1
        self.selected = None
        self.monetization = None
        self.error = None

        node = self.graph.get(node_id)
        if node is None:
            logger.info("player_target_missing", extra={"content_id": node_id})
            self.node = None
            self._set_state(GateState.ENDED)
            return
        self.node = node

        epoch = self._epoch
        decision = await self.checker.check_access(self.user_id, node.id)
        if self.closed or epoch != self._epoch:
            return
        if not decision.allowed:
            self.monetization = decision.monetization
            self._set_state(GateState.LOCKED)
            return
        self._play()

    async def select(self, option_id: str) -> bool:
        """Viewer picked an option. Only valid while the decision window is open."""
        if self.state != GateState.DECISION_WINDOW or self.node is None:
            return False
        option = next((o for o in self.node.options if o.id == option_id), None)
        if option is None:
            return False
        await self._transition(option)
        return True

    # ------------------------------------------------------------------
    # Unlocking
    # ------------------------------------------------------------------

    async def unlock_with_coins(self) -> UnlockResult:
        return await self._unlock(lambda node_id: self.checker.unlock_with_coins(self.user_id, node_id))

    async def unlock_with_ad(self, tracking_id: str, completed: bool) -> UnlockResult:
        return await self._unlock(
            lambda node_id: self.checker.unlock_with_ad(self.user_id, node_id, tracking_id, completed)
        )

    async def _unlock(self, call) -> UnlockResult:
        if self.state != GateState.LOCKED or self.node is None:
            raise RuntimeError(f"cannot unlock in state {self.state.value}")
        epoch = self._epoch
        self._set_state(GateState.UNLOCKING)
        try:
            result = await call(self.node.id)
        except Exception:
            if not self.closed and epoch == self._epoch:
                self._set_state(GateState.LOCKED)
            raise
        if self.closed or epoch != self._epoch:
            return result
        if result.success:
            self.monetization = None
            self._play()
        else:
            self._set_state(GateState.LOCKED)
        return result

    # ------------------------------------------------------------------
    # Media events (timed content)
    # ------------------------------------------------------------------

    def on_media_progress(self, position: float, duration: float) -> None:
        """Player position update for video nodes. Terminal nodes just play to the end."""
        if self.state != GateState.PLAYING or self.node is None or not duration:
            return
        if not self.node.options:
            return
        if duration - position <= self.node.decision_trigger_time:
            self._open_decision_window()

    def on_media_ended(self) -> None:
        if self.state != GateState.PLAYING or self.node is None:
            return
        if self.node.options:
            self._open_decision_window()
        else:
            self._set_state(GateState.ENDED)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Stop everything. No timer callback runs after this returns."""
        if self.closed:
            return
        self._epoch += 1
        tasks = self._cancel_timers()
        self._set_state(GateState.CLOSED)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    @property
    def closed(self) -> bool:
        return self.state == GateState.CLOSED

    @property
    def time_left(self) -> float | None:
        """Seconds left in the decision countdown, None outside the window."""
        if self._deadline is None or self.state != GateState.DECISION_WINDOW:
            return None
        return max(0.0, self._deadline - asyncio.get_running_loop().time())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _play(self) -> None:
        self._set_state(GateState.PLAYING)
        node = self.node
        if node.is_timed_media:
            return
        # static content "finishes" when the delay elapses
        self._schedule(self.static_decision_delay, self._static_content_done)

    def _static_content_done(self) -> None:
        if self.node.options:
            self._open_decision_window()
        else:
            self._set_state(GateState.ENDED)

    def _open_decision_window(self) -> None:
        if self.state != GateState.PLAYING:
            return
        countdown = self.node.decision_trigger_time
        self._deadline = asyncio.get_running_loop().time() + countdown
        self._set_state(GateState.DECISION_WINDOW)
        self._schedule(countdown, self._countdown_expired)

    async def _countdown_expired(self) -> None:
        option = default_option(self.node)
        if option is None:
            self._set_state(GateState.ENDED)
            return
        logger.info("player_auto_select", extra={"content_id": self.node.id, "reason": option.id})
        await self._transition(option)

    async def _transition(self, option: StoryOption) -> None:
        self._cancel_timers()
        self._deadline = None
        self.selected = option
        self._set_state(GateState.TRANSITIONING)
        await self.enter(option.target_id)

    def _schedule(self, delay: float, callback) -> None:
        epoch = self._epoch

        async def fire() -> None:
            await asyncio.sleep(delay)
            if self.closed or epoch != self._epoch:
                return
            try:
                result = callback()
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.exception(
                    "player_timer_failed",
                    extra={"content_id": self.node.id if self.node else None},
                )
                if not self.closed:
                    self.error = e
                    self._set_state(GateState.ENDED)

        task = asyncio.create_task(fire())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _cancel_timers(self) -> list[asyncio.Task]:
        # the running timer may be the caller (auto-select); it finishes on its own
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        cancelled = [t for t in self._tasks if t is not current and not t.done()]
        for task in cancelled:
            task.cancel()
        return cancelled

    def _set_state(self, state: GateState) -> None:
        if state == self.state:
            return
        self.state = state
        if state != GateState.DECISION_WINDOW:
            self._deadline = None
        if self.on_state_change is not None:
            self.on_state_change(state, self.node)
