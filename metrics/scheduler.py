"""
Host Usage Scheduler Module
Runs the host usage sampling cycle at a fixed rate
"""

import asyncio
import logging
from typing import Callable, List, Optional, Set

from .host_usage import HostUsage, SystemResourceUsage

logger = logging.getLogger(__name__)


class HostUsageScheduler:
    """
    Triggers ``calculate_host_usage`` immediately and then every
    ``check_interval_minutes``, measured from the start of the first cycle
    so the period does not stretch by the cycle duration.

    Cycles run in the default executor so the blocking counter reads never
    stall the event loop. A cycle that overruns ``read_timeout_seconds`` is
    waited for before the next one starts, so cycles never overlap, and its
    snapshot still reaches subscribers once it completes.
    """

    def __init__(
        self,
        host_usage: HostUsage,
        check_interval_minutes: float = 1,
        read_timeout_seconds: float = 30.0,
    ):
        self.host_usage = host_usage
        self.interval_seconds = check_interval_minutes * 60
        self.read_timeout_seconds = read_timeout_seconds
        self.running = False
        self._pending: Optional[asyncio.Future] = None
        self._subscribers: List[Callable] = []
        self._late_notifications: Set[asyncio.Task] = set()

    def subscribe(self, callback: Callable) -> None:
        """Subscribe to published snapshots"""
        self._subscribers.append(callback)

    async def _notify_subscribers(self, usage: SystemResourceUsage):
        for callback in self._subscribers:
            try:
                if asyncio.iscoroutinefunction(callback):
                    await callback(usage)
                else:
                    callback(usage)
            except Exception as e:
                logger.error(f"Host usage subscriber error: {e}")

    def _on_late_cycle(self, future: asyncio.Future) -> None:
        """Forward the snapshot of a cycle that finished after its timeout"""
        if future.cancelled() or future.exception() is not None:
            return

        logger.info("Late host usage cycle finished, notifying subscribers")
        task = asyncio.get_running_loop().create_task(
            self._notify_subscribers(future.result())
        )
        self._late_notifications.add(task)
        task.add_done_callback(self._late_notifications.discard)

    async def run_cycle(self) -> Optional[SystemResourceUsage]:
        """Run a single cycle, returns None when it was skipped or timed out"""
        if self._pending is not None and not self._pending.done():
            logger.warning("Previous host usage cycle still running, skipping")
            return None

        loop = asyncio.get_running_loop()
        self._pending = loop.run_in_executor(None, self.host_usage.calculate_host_usage)

        try:
            usage = await asyncio.wait_for(
                asyncio.shield(self._pending), timeout=self.read_timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.error(
                f"Host usage cycle exceeded {self.read_timeout_seconds}s, "
                "next cycle waits for it to finish"
            )
            self._pending.add_done_callback(self._on_late_cycle)
            return None

        await self._notify_subscribers(usage)
        return usage

    async def start(self) -> None:
        """Start periodic sampling"""
        self.running = True
        logger.info(
            f"Host usage sampling started (interval {self.interval_seconds:.0f}s)"
        )

        loop = asyncio.get_running_loop()
        deadline = loop.time()
        while self.running:
            try:
                await self.run_cycle()
            except Exception as e:
                logger.error(f"Host usage scheduling error: {e}")
            deadline += self.interval_seconds
            await asyncio.sleep(max(0.0, deadline - loop.time()))

    async def stop(self) -> None:
        """Stop periodic sampling"""
        self.running = False
        logger.info("Host usage sampling stopped")
