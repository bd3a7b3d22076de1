# railcam/services/instance_store.py
from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterable
from datetime import datetime, timedelta
from pathlib import Path

from pydantic import ValidationError

from railcam.config import settings
from railcam.domain.models import TrainStatus, utcnow
from railcam.domain.route import route_for_train

# Below this many persisted runs nothing is pruned.
PRUNE_MIN_INSTANCES = 2

log = logging.getLogger("railcam.store")


def data_dir() -> Path:
    if settings and getattr(settings, "DATA_DIR", None):
        return Path(settings.DATA_DIR)
    return Path("data")


def write_json_atomic(path: Path, payload) -> bool:
    """tmp file + replace; readers see either the old or the new document."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(path)
        return True
    except (OSError, TypeError, ValueError):
        log.exception("write failed path=%s", path)
        return False


def read_json(path: Path):
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        log.warning("unreadable json path=%s err=%r", path, e)
        return None


def sort_by_arrival(instances: Iterable[TrainStatus]) -> list[TrainStatus]:
    """Soonest ETA first; runs without an ETA go last."""
    items = list(instances)
    return sorted(
        items,
        key=lambda s: (s.estimated_arrival is None, s.estimated_arrival or datetime.min),
    )


class InstanceStore:
    """
    Persisted runs per train, kept in one JSON document:
    {"3": [TrainStatus...], "4": [...]}.
    """

    def __init__(
        self,
        json_path: Path | None = None,
        *,
        max_instances: int = 3,
        prune_window_hours: float = 3.0,
    ):
        self.json_path = Path(json_path or (data_dir() / "train_status.json"))
        self.max_instances = max(1, int(max_instances))
        self.prune_window = timedelta(hours=float(prune_window_hours))
        self._lock = threading.RLock()

    # ---------- read ----------

    def read_all(self) -> dict[str, list[TrainStatus]]:
        data = read_json(self.json_path)
        if not isinstance(data, dict):
            return {}
        out: dict[str, list[TrainStatus]] = {}
        for train, rows in data.items():
            if not isinstance(rows, list):
                continue
            parsed: list[TrainStatus] = []
            for row in rows:
                try:
                    parsed.append(TrainStatus.model_validate(row))
                except ValidationError as e:
                    log.warning("dropping bad record train=%s err=%s", train, e.errors()[:1])
            out[str(train)] = parsed
        return out

    def list_instances(self, train_number: str) -> list[TrainStatus]:
        with self._lock:
            return self.read_all().get(str(train_number), [])

    # ---------- write ----------

    def _write_all(self, data: dict[str, list[TrainStatus]]) -> bool:
        payload = {t: [s.to_json_dict() for s in rows] for t, rows in sorted(data.items())}
        return write_json_atomic(self.json_path, payload)

    def _merge_one(
        self,
        current: list[TrainStatus],
        incoming: TrainStatus,
        *,
        keys_by_next_station: bool,
    ) -> None:
        for i, existing in enumerate(current):
            if existing.instance_id == incoming.instance_id:
                current[i] = incoming
                return
        if keys_by_next_station and incoming.next_station:
            for i, existing in enumerate(current):
                if existing.next_station == incoming.next_station:
                    current[i] = incoming
                    return

        if len(current) < self.max_instances:
            current.append(incoming)
            return

        for i, existing in enumerate(current):
            if existing.next_station == incoming.next_station:
                current[i] = incoming
                return
        current[0] = incoming

    def prune(
        self,
        train_number: str,
        instances: list[TrainStatus],
        *,
        now: datetime | None = None,
    ) -> list[TrainStatus]:
        """Drop stale runs parked at their final destination.

        Only applies when more than two runs are held; a destination run
        whose ETA is within the window either side of now is kept.
        """
        if len(instances) <= PRUNE_MIN_INSTANCES:
            return list(instances)
        now = now or utcnow()
        route = route_for_train(train_number)

        kept: list[TrainStatus] = []
        for s in instances:
            if route.is_final_destination(s.next_station):
                if s.estimated_arrival is None or abs(now - s.estimated_arrival) >= self.prune_window:
                    log.info(
                        "pruned train=%s instance=%s next=%s eta=%s",
                        train_number,
                        s.instance_id,
                        s.next_station,
                        s.estimated_arrival,
                    )
                    continue
            kept.append(s)
        return kept

    def merge(
        self,
        train_number: str,
        instances: Iterable[TrainStatus],
        *,
        keys_by_next_station: bool = False,
        now: datetime | None = None,
    ) -> list[TrainStatus]:
        """Fold fresh runs into the persisted list and return the result.

        The in-memory result is returned even if the write fails; the next
        cycle rewrites the file from fresh data.
        """
        train_number = str(train_number)
        with self._lock:
            data = self.read_all()
            current = list(data.get(train_number, []))
            for s in instances:
                self._merge_one(current, s, keys_by_next_station=keys_by_next_station)
            current = self.prune(train_number, current, now=now)
            data[train_number] = current
            if self._write_all(data):
                log.info("merged train=%s instances=%d", train_number, len(current))
            return current

