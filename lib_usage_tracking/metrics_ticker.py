"""
Metrics Ticker

Periodically refreshes a tracker's real-time metrics while a session is live.
The tracker never schedules itself; whoever owns the session owns the ticker
and must stop it when the session ends or the client disconnects.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from lib_usage_tracking.usage_models import ConversationMetrics
from lib_usage_tracking.usage_tracker import ConversationUsageTracker
from app.config import METRICS_REFRESH_INTERVAL_MS

logger = logging.getLogger(__name__)


class MetricsTicker:
    """
    Calls tracker.update_real_time_metrics() every interval_ms.
    """

    def __init__(
        self,
        tracker: ConversationUsageTracker,
        interval_ms: int = METRICS_REFRESH_INTERVAL_MS,
        on_tick: Optional[Callable[[ConversationMetrics], Awaitable[None]]] = None
    ):
        """
        Initialize the ticker.

        Args:
            tracker: Tracker to refresh
            interval_ms: Refresh period in milliseconds
            on_tick: Optional coroutine receiving the refreshed metrics
        """
        self.tracker = tracker
        self.interval_ms = interval_ms
        self.on_tick = on_tick
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        """Start ticking; a no-op if already running."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self):
        """Cancel the tick loop and wait for it to exit."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self):
        interval = self.interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            self.tracker.update_real_time_metrics()
            if self.on_tick is None:
                continue
            try:
                await self.on_tick(self.tracker.current_metrics)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"[MetricsTicker] Tick callback failed: {e}")
