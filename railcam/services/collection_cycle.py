# railcam/services/collection_cycle.py
from __future__ import annotations

import contextlib
import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

from railcam.config import TrackerConfig
from railcam.domain.models import TrainStatus, utcnow
from railcam.services.approach_predictor import ApproachPredictor
from railcam.services.instance_collector import InstanceCollector
from railcam.services.instance_store import InstanceStore
from railcam.services.sources.base import SourceAdapter, build_source
from railcam.services.station_directory import StationDirectory, load_directory
from railcam.services.status_aggregator import (
    TRACKED_TRAINS,
    CurrentStatusStore,
    StatusAggregator,
)

DEBUG_EVENTS_MAX = 200

log = logging.getLogger("railcam.cycle")


class CollectionCycle:
    """
    One collection cycle: collect -> reconcile -> predict -> publish.

    Overlapping runs are refused and non-forced runs are throttled to
    MIN_CYCLE_INTERVAL_MINUTES.
    """

    def __init__(
        self,
        *,
        config_factory: Callable[[], TrackerConfig] = TrackerConfig.from_settings,
        directory_loader: Callable[[], StationDirectory] = load_directory,
        source_factory: Callable[[TrackerConfig], SourceAdapter] = build_source,
        store_path: Path | None = None,
        snapshot_path: Path | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._config_factory = config_factory
        self._directory_loader = directory_loader
        self._source_factory = source_factory
        self._store_path = store_path
        self._snapshot_path = snapshot_path
        self._clock = clock

        self._run_lock = threading.Lock()
        self._last_run_at: datetime | None = None
        self._last_result: dict | None = None
        self._runs: int = 0
        self._errors_streak: int = 0

        # --- Debug ---
        self._debug = deque(maxlen=DEBUG_EVENTS_MAX)
        self._last_took_s: float = 0.0

    # -------- Internals: logging --------
    def _log(self, stage: str, **kv) -> None:
        evt = {"t": int(time.time()), "stage": stage, **kv}
        self._debug.append(evt)
        with contextlib.suppress(Exception):
            log.info("cycle %s %s", stage, {k: v for k, v in evt.items() if k != "stage"})

    def _throttled(self, now: datetime, config: TrackerConfig) -> bool:
        if self._last_run_at is None:
            return False
        return now - self._last_run_at < timedelta(minutes=config.min_cycle_interval_minutes)

    def _collect_train(
        self,
        train: str,
        collector: InstanceCollector,
        store: InstanceStore,
        source: SourceAdapter,
        now: datetime,
    ) -> tuple[list[TrainStatus], dict]:
        try:
            result = collector.collect(train)
            merged = store.merge(
                train,
                result.instances,
                keys_by_next_station=source.keys_by_next_station,
                now=now,
            )
            info = {
                "fetched": 0 if result.degraded else len(result.instances),
                "persisted": len(merged),
                "degraded": result.degraded,
            }
            return merged, info
        except Exception as e:
            log.exception("train=%s collection failed", train)
            return store.list_instances(train), {"error": repr(e)}

    # -------- Public API --------
    def run(self, force: bool = False) -> dict:
        if not self._run_lock.acquire(blocking=False):
            self._log("skipped_busy", force=force)
            return {"ran": False, "reason": "busy"}
        try:
            try:
                config = self._config_factory()
            except Exception as e:
                return self._setup_failed(e)
            now = self._clock()
            if not force and self._throttled(now, config):
                self._log("skipped_throttled", last_run=self._last_run_iso())
                return {"ran": False, "reason": "throttled", "last_run": self._last_run_iso()}
            self._last_run_at = now
            return self._run_locked(config, now, force)
        finally:
            self._run_lock.release()

    def _run_locked(self, config: TrackerConfig, now: datetime, force: bool) -> dict:
        t0 = time.monotonic()
        try:
            directory = self._directory_loader()
            source = self._source_factory(config)
        except Exception as e:
            return self._setup_failed(e)
        store = InstanceStore(
            self._store_path,
            max_instances=config.max_instances_per_train,
            prune_window_hours=config.prune_window_hours,
        )
        collector = InstanceCollector(source, store, candidate_days=config.candidate_days)
        aggregator = StatusAggregator(
            ApproachPredictor(directory, config),
            CurrentStatusStore(self._snapshot_path),
        )

        by_train: dict[str, list[TrainStatus]] = {}
        trains: dict[str, dict] = {}
        for train in TRACKED_TRAINS:
            by_train[train], trains[train] = self._collect_train(train, collector, store, source, now)

        snapshot, written = aggregator.publish(by_train, now=now)

        self._runs += 1
        failed = (not written) or any("error" in t for t in trains.values())
        self._errors_streak = self._errors_streak + 1 if failed else 0
        self._last_took_s = time.monotonic() - t0

        result = {
            "ran": True,
            "force": force,
            "source": source.kind,
            "stations": len(directory),
            "trains": trains,
            "approaching": {
                t: snapshot.for_train(t).station.name
                for t in TRACKED_TRAINS
                if snapshot.for_train(t).approaching and snapshot.for_train(t).station
            },
            "snapshot_written": written,
            "last_updated": snapshot.last_updated.isoformat(),
            "took_s": round(self._last_took_s, 3),
        }
        self._last_result = result
        self._log("run", **{k: v for k, v in result.items() if k != "ran"})
        return result

    def _setup_failed(self, e: Exception) -> dict:
        # called from an except block so the traceback is logged
        log.exception("cycle setup failed")
        self._errors_streak += 1
        result = {"ran": False, "reason": "error", "error": repr(e)}
        self._last_result = result
        self._log("setup_error", error=repr(e))
        return result

    def _last_run_iso(self) -> str:
        if self._last_run_at is None:
            return "-"
        return self._last_run_at.astimezone(UTC).isoformat()

    # -------- Debug API --------
    def debug_state(self) -> dict:
        return {
            "runs": self._runs,
            "running": self._run_lock.locked(),
            "last_run": self._last_run_iso(),
            "last_took_s": round(self._last_took_s, 3),
            "errors_streak": self._errors_streak,
            "last_result": self._last_result,
        }

    def debug_events(self, limit: int = 50) -> list[dict]:
        if limit <= 0:
            return []
        return list(self._debug)[-limit:]


_cycle_singleton: CollectionCycle | None = None
_singleton_lock = threading.Lock()


def get_collection_cycle() -> CollectionCycle:
    global _cycle_singleton
    if _cycle_singleton is None:
        with _singleton_lock:
            if _cycle_singleton is None:
                _cycle_singleton = CollectionCycle()
    return _cycle_singleton
