"""
ORACLE RELAY — Continuous Scheduler
Drives the price publisher on a fixed interval on an explicit asyncio task.
Cycles never overlap: ticks that come due while a cycle is still running
are skipped and counted. stop() is cooperative and lets an in-flight cycle
finish.
"""
import asyncio
from enum import Enum
from typing import Any, Dict, List, Optional

from oracle_relay.data.aggregator import PublisherConfigStore
from oracle_relay.publisher.publisher import PricePublisher
from oracle_relay.utils.helpers import normalize_symbol, utc_timestamp
from oracle_relay.utils.logger import get_logger

logger = get_logger("scheduler")


class SchedulerState(str, Enum):
    STOPPED = "STOPPED"
    RUNNING = "RUNNING"


class SchedulerAlreadyRunning(RuntimeError):
    pass


class ContinuousScheduler:
    def __init__(self, publisher: PricePublisher, config_store: PublisherConfigStore):
        self.publisher = publisher
        self.config_store = config_store
        self.state = SchedulerState.STOPPED
        self.symbols: List[str] = []
        self.interval_ms: int = config_store.get().publish_interval_ms
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._reset_counters()

    def _reset_counters(self) -> None:
        self.started_at: Optional[str] = None
        self.cycles_run = 0
        self.cycles_skipped = 0
        self.cycle_failures = 0
        self.last_publish_time: Optional[str] = None
        self.last_publish_count = 0
        self.total_publishes = 0

    @property
    def running(self) -> bool:
        return self.state == SchedulerState.RUNNING

    def start(self, symbols: List[str], interval_ms: Optional[int] = None) -> asyncio.Task:
        """Run a cycle now and then every interval. Must be called inside a running loop."""
        if self.running:
            raise SchedulerAlreadyRunning("scheduler is already running")
        if self._task is not None and not self._task.done():
            raise SchedulerAlreadyRunning("previous cycle is still finishing")

        if interval_ms is None:
            interval_ms = self.config_store.get().publish_interval_ms
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")

        self._reset_counters()
        self.symbols = [normalize_symbol(s) for s in symbols]
        self.interval_ms = interval_ms
        self.started_at = utc_timestamp()
        self.state = SchedulerState.RUNNING
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(self._stop_event), name="price-publisher")

        logger.info("scheduler_started", symbols=self.symbols, interval_ms=interval_ms)
        return self._task

    def stop(self) -> None:
        """Prevent further cycles. No-op when already stopped."""
        if not self.running:
            return
        self.state = SchedulerState.STOPPED
        self._stop_event.set()
        logger.info("scheduler_stop_requested", cycles_run=self.cycles_run)

    async def wait(self) -> None:
        """Wait for the loop task to exit (after stop())."""
        if self._task is not None:
            await self._task

    async def shutdown(self) -> None:
        self.stop()
        await self.wait()

    async def _run(self, stop_event: asyncio.Event) -> None:
        loop = asyncio.get_running_loop()
        interval = self.interval_ms / 1000
        next_tick = loop.time()

        while not stop_event.is_set():
            await self._cycle()

            next_tick += interval
            now = loop.time()
            if now > next_tick:
                missed = int((now - next_tick) // interval) + 1
                self.cycles_skipped += missed
                next_tick += missed * interval
                logger.warning("scheduler_ticks_skipped", missed=missed)

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=next_tick - now)
            except asyncio.TimeoutError:
                pass

        logger.info("scheduler_stopped", cycles_run=self.cycles_run, total_publishes=self.total_publishes)

    async def _cycle(self) -> None:
        self.cycles_run += 1
        try:
            report = await self.publisher.publish_all(self.symbols)
        except Exception as e:
            self.cycle_failures += 1
            logger.error("scheduler_cycle_failed", cycle=self.cycles_run, error=str(e))
            return

        self.last_publish_time = utc_timestamp()
        self.last_publish_count = len(report.results)
        self.total_publishes += len(report.results)
        if report.failures:
            logger.warning("scheduler_cycle_partial", cycle=self.cycles_run, failed=list(report.failures))

    def status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "running": self.running,
            "interval_ms": self.interval_ms,
            "symbols": self.symbols,
            "started_at": self.started_at,
            "cycles_run": self.cycles_run,
            "cycles_skipped": self.cycles_skipped,
            "cycle_failures": self.cycle_failures,
            "last_publish_time": self.last_publish_time,
            "last_publish_count": self.last_publish_count,
            "total_publishes": self.total_publishes,
        }
