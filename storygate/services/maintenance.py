"""
In-process maintenance loop: sweeps expired ad sessions on a fixed interval.
Runs beside request handling (FastAPI lifespan); the sweep itself runs in a worker thread.
"""
import asyncio
import logging

from storygate.services.ad_sessions.service import AdSessionTracker

logger = logging.getLogger(__name__)


async def run_ad_session_sweeper(tracker: AdSessionTracker, interval_seconds: float) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(tracker.sweep_expired)
        except Exception:
            logger.exception("ad_session_sweep_failed")


def start_ad_session_sweeper(tracker: AdSessionTracker, interval_seconds: float) -> asyncio.Task:
    return asyncio.create_task(run_ad_session_sweeper(tracker, interval_seconds), name="ad-session-sweeper")
