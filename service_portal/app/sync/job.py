"""
Periodic reconciliation of the external water-level feed into storage.

One run fetches a batch, validates each item independently, upserts the
station by code and the reading by (station_id, measured_at), then
invalidates the listing caches that were touched. Re-running against an
unchanged feed leaves storage unchanged.
"""

import asyncio
import math
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set, TYPE_CHECKING

from shared.errors import PortalException, SyncAlreadyRunningError, SyncNotConfiguredError
from shared.logging import get_logger
from ..caching import STATIONS_LIST_PREFIX, WATER_LEVELS_LIST_PREFIX, TtlCache
from ..persistence import STATIONS, WATER_LEVELS, PersistenceGateway
from ..validation import clean_text, is_number, parse_instant
from .feed_client import FeedClient

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_INTERVAL_MS = 5 * 60 * 1000
MIN_INTERVAL_MS = 30 * 1000


def resolve_interval_ms(value: Any) -> int:
    """Return value when it is a finite interval of at least 30 s, else 5 min."""
    try:
        interval = float(value)
    except (TypeError, ValueError):
        return DEFAULT_INTERVAL_MS
    if not math.isfinite(interval) or interval < MIN_INTERVAL_MS:
        return DEFAULT_INTERVAL_MS
    return int(interval)


@dataclass
class SyncResult:
    """Counters for one run."""
    stations_upserted: int = 0
    readings_upserted: int = 0
    skipped: int = 0
    total: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class SyncSchedule:
    """Handle returned by ``SyncJob.start``."""

    def __init__(self, job: "SyncJob", interval_ms: int):
        self.job = job
        self.interval_ms = interval_ms
        self._loop_task: Optional[asyncio.Task] = None
        self._ticks: Set[asyncio.Task] = set()

    def _start(self):
        self._loop_task = asyncio.create_task(self._loop())

    async def _loop(self):
        while True:
            # Ticks run as their own tasks so stop() never cancels one mid-flight
            tick = asyncio.create_task(self.job.tick())
            self._ticks.add(tick)
            tick.add_done_callback(self._ticks.discard)
            await asyncio.sleep(self.interval_ms / 1000.0)

    @property
    def active(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def stop(self):
        """Cancel the timer. An in-flight tick keeps running."""
        if self._loop_task is not None and not self._loop_task.done():
            self._loop_task.cancel()
            self.job.logger.info("Sync scheduler stopped")

    async def wait_closed(self):
        """Wait for the timer to unwind and any in-flight tick to finish."""
        if self._loop_task is not None:
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
        if self._ticks:
            await asyncio.gather(*list(self._ticks), return_exceptions=True)


class SyncJob:
    """Feed-to-storage synchronization with an overlap guard."""

    def __init__(
        self,
        store: PersistenceGateway,
        cache: TtlCache,
        feed_client: Optional[FeedClient],
        default_source: str = "BBWS",
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.cache = cache
        self.feed_client = feed_client
        self.default_source = default_source
        self.metrics = metrics
        self.logger = get_logger("portal.sync")
        self.running = False
        self.last_result: Optional[SyncResult] = None
        self.last_run_at: Optional[datetime] = None

    @property
    def configured(self) -> bool:
        return self.feed_client is not None

    async def run_once(self) -> SyncResult:
        """Fetch one batch and reconcile it into storage.

        Raises SyncNotConfiguredError without a feed and ExternalFetchError
        when the batch cannot be fetched; in the latter case no cache entry
        is invalidated.
        """
        if self.feed_client is None:
            raise SyncNotConfiguredError()

        start_time = time.time()
        try:
            items = await self.feed_client.fetch()
        except PortalException:
            self._record_run("fetch_failed", start_time)
            raise

        result = SyncResult(total=len(items))
        for index, item in enumerate(items):
            await self._process_item(index, item, result)

        if result.stations_upserted > 0:
            self.cache.delete_by_prefix(STATIONS_LIST_PREFIX)
        if result.readings_upserted > 0:
            self.cache.delete_by_prefix(WATER_LEVELS_LIST_PREFIX)

        self.last_result = result
        self.last_run_at = datetime.now(timezone.utc)
        self._record_run("success", start_time, result)
        self.logger.info("Sync run completed", **result.to_dict())
        return result

    async def _process_item(self, index: int, item: Any, result: SyncResult):
        if not isinstance(item, dict):
            result.skipped += 1
            return

        code = None
        try:
            code = clean_text(item.get("stationCode"))
            water_level = item.get("waterLevel")
            measured_at = parse_instant(item.get("measuredAt"))
            if code is None or not is_number(water_level) or measured_at is None:
                result.skipped += 1
                self.logger.debug("Sync item skipped", index=index, station_code=code)
                return

            station = await self._upsert_station(code, item)
            result.stations_upserted += 1

            await self.store.upsert(
                WATER_LEVELS,
                {"station_id": station["id"], "measured_at": measured_at},
                {"water_level": float(water_level), "source": self._source(item)},
                {"water_level": float(water_level), "source": self._source(item)},
            )
            result.readings_upserted += 1
        except Exception as e:
            # One bad item must not abort the batch
            result.skipped += 1
            self.logger.error("Sync item failed", index=index, station_code=code, error=str(e))

    async def _upsert_station(self, code: str, item: Dict[str, Any]) -> Dict[str, Any]:
        present: Dict[str, Any] = {}
        name = clean_text(item.get("stationName"))
        if name is not None:
            present["name"] = name
        river_name = clean_text(item.get("riverName"))
        if river_name is not None:
            present["river_name"] = river_name
        for column in ("latitude", "longitude"):
            if is_number(item.get(column)):
                present[column] = float(item[column])

        create_fields = {"name": code, "is_active": True, **present}
        station, _ = await self.store.upsert(STATIONS, {"code": code}, create_fields, present)
        return station

    def _source(self, item: Dict[str, Any]) -> str:
        return clean_text(item.get("source")) or self.default_source

    def _record_run(self, outcome: str, start_time: float, result: Optional[SyncResult] = None):
        if self.metrics is None:
            return
        self.metrics.increment_counter("sync_runs_total", outcome=outcome)
        self.metrics.observe_histogram("sync_duration_seconds", time.time() - start_time)
        if result is not None:
            self.metrics.increment_counter("sync_items_total", result.stations_upserted, kind="station")
            self.metrics.increment_counter("sync_items_total", result.readings_upserted, kind="reading")
            self.metrics.increment_counter("sync_items_total", result.skipped, kind="skipped")

    async def trigger(self) -> SyncResult:
        """Run now on behalf of a caller; rejected while a run is in flight."""
        if self.running:
            raise SyncAlreadyRunningError()
        self.running = True
        try:
            return await self.run_once()
        finally:
            self.running = False

    async def tick(self):
        """Scheduled run. A no-op while another run is in flight; never raises."""
        if self.running:
            self.logger.info("Sync tick skipped, previous run still in flight")
            if self.metrics is not None:
                self.metrics.increment_counter("sync_runs_total", outcome="overlap_skipped")
            return

        self.running = True
        try:
            await self.run_once()
        except PortalException as e:
            self.logger.error("Sync tick failed", code=e.code, error=e.message)
        except Exception as e:
            self.logger.error("Sync tick crashed", error=str(e), exc_info=e)
        finally:
            self.running = False

    def start(self, interval_ms: Any = DEFAULT_INTERVAL_MS) -> SyncSchedule:
        """Start the recurring timer; the first tick fires immediately."""
        schedule = SyncSchedule(self, resolve_interval_ms(interval_ms))
        schedule._start()
        self.logger.info("Sync scheduler started", interval_ms=schedule.interval_ms)
        return schedule
