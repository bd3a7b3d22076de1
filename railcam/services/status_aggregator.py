# railcam/services/status_aggregator.py
from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from railcam.domain.models import CurrentStatus, TrainApproaching, TrainStatus, utcnow
from railcam.services.approach_predictor import ApproachPredictor, minutes_until
from railcam.services.instance_store import data_dir, read_json, sort_by_arrival, write_json_atomic

TRACKED_TRAINS = ("3", "4")

DAY_MINUTES = 1440
WRAP_UPPER_MINUTES = 720
WRAP_LOWER_MINUTES = -900
SUSPECT_DELTA_MINUTES = 20 * 60
# Within this many minutes past the ETA the train is still "arriving".
ARRIVED_GRACE_MINUTES = 2

log = logging.getLogger("railcam.aggregator")


def normalize_day_boundary(minutes: int) -> int:
    """Fold a delta that crossed midnight back into [-900, 720]."""
    if abs(minutes) > SUSPECT_DELTA_MINUTES:
        log.warning("suspect ETA delta minutes=%d; normalizing across day boundary", minutes)
    m = minutes
    while m > WRAP_UPPER_MINUTES:
        m -= DAY_MINUTES
    while m < WRAP_LOWER_MINUTES:
        m += DAY_MINUTES
    return m


def format_time_until_arrival(minutes: int) -> str:
    """45 -> '45 min', 125 -> '2 hrs 5 min'."""
    n = abs(int(minutes))
    if n > 60:
        hours, rest = divmod(n, 60)
        return f"{hours} hr{'s' if hours != 1 else ''} {rest} min"
    return f"{n} min"


def generate_status_message(
    instance: TrainStatus,
    approaching: TrainApproaching,
    *,
    now: datetime | None = None,
) -> str:
    train = instance.train_number
    if approaching.approaching and approaching.station and approaching.minutes_away is not None:
        name = approaching.station.name
        if approaching.eta is not None:
            delta = minutes_until(approaching.eta, now or utcnow())
        else:
            delta = approaching.minutes_away
        delta = normalize_day_boundary(delta)

        if delta >= 0:
            return (
                f"Train #{train} is approaching {name} and will arrive "
                f"in approximately {delta} minutes."
            )
        if delta >= -ARRIVED_GRACE_MINUTES:
            return f"Train #{train} is arriving at {name} now."
        return f"Train #{train} arrived at {name} approximately {abs(delta)} minutes ago."

    if instance.current_location and instance.next_station:
        return (
            f"Train #{train} is currently at {instance.current_location} "
            f"and heading to {instance.next_station}."
        )
    return f"Train #{train} status: {instance.status}"


class CurrentStatusStore:
    """The published snapshot; every write replaces the whole document."""

    def __init__(self, json_path: Path | None = None):
        self.json_path = Path(json_path or (data_dir() / "current_status.json"))
        self._lock = threading.Lock()

    def read(self) -> CurrentStatus | None:
        data = read_json(self.json_path)
        if not isinstance(data, dict):
            return None
        try:
            return CurrentStatus.model_validate(data)
        except ValidationError as e:
            log.warning("bad snapshot path=%s err=%s", self.json_path, e.errors()[:1])
            return None

    def write(self, status: CurrentStatus) -> bool:
        with self._lock:
            return write_json_atomic(self.json_path, status.to_json_dict())


class StatusAggregator:
    def __init__(self, predictor: ApproachPredictor, snapshot_store: CurrentStatusStore):
        self.predictor = predictor
        self.snapshot_store = snapshot_store

    def aggregate_train(
        self,
        instances: Iterable[TrainStatus],
        *,
        now: datetime | None = None,
    ) -> TrainApproaching:
        now = now or utcnow()
        best: TrainApproaching | None = None
        for s in instances:
            res = self.predictor.predict(s, now=now)
            if not res.approaching:
                continue
            if best is None or res.minutes_away < best.minutes_away:
                best = res
        return best or TrainApproaching.not_approaching()

    def build_snapshot(
        self,
        instances_by_train: Mapping[str, list[TrainStatus]],
        *,
        now: datetime | None = None,
    ) -> CurrentStatus:
        now = now or utcnow()
        fields: dict[str, TrainApproaching] = {}
        lookahead = {}
        for train in TRACKED_TRAINS:
            instances = sort_by_arrival(instances_by_train.get(train, []))
            fields[f"train{train}"] = self.aggregate_train(instances, now=now)
            nxt = self.predictor.soonest_next_railcam(instances, now=now)
            if nxt is not None:
                lookahead[train] = nxt
        return CurrentStatus(**fields, next_railcam=lookahead, last_updated=now)

    def publish(
        self,
        instances_by_train: Mapping[str, list[TrainStatus]],
        *,
        now: datetime | None = None,
    ) -> tuple[CurrentStatus, bool]:
        snapshot = self.build_snapshot(instances_by_train, now=now)
        ok = self.snapshot_store.write(snapshot)
        for train in TRACKED_TRAINS:
            res = snapshot.for_train(train)
            if res.approaching:
                log.info(
                    "train=%s approaching station=%s in=%s",
                    train,
                    res.station.name if res.station else None,
                    format_time_until_arrival(res.minutes_away or 0),
                )
        return snapshot, ok
