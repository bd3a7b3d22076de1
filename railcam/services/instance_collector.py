# railcam/services/instance_collector.py
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date

from railcam.domain.models import TrainStatus
from railcam.services.instance_store import InstanceStore
from railcam.services.sources.base import SourceAdapter, candidate_dates, provider_today

MAX_FETCH_WORKERS = 3

log = logging.getLogger("railcam.collector")


@dataclass
class CollectionResult:
    train_number: str
    instances: list[TrainStatus] = field(default_factory=list)
    dates: list[date] = field(default_factory=list)
    # True when the source gave nothing and persisted runs were returned instead.
    degraded: bool = False


class InstanceCollector:
    def __init__(
        self,
        source: SourceAdapter,
        store: InstanceStore,
        *,
        candidate_days: int = 3,
    ):
        self.source = source
        self.store = store
        self.candidate_days = max(1, int(candidate_days))

    def _fetch_one(self, train_number: str, service_date: date) -> TrainStatus | None:
        try:
            return self.source.fetch(train_number, service_date)
        except Exception:
            log.exception("source raised train=%s date=%s", train_number, service_date)
            return None

    def collect(self, train_number: str, *, today: date | None = None) -> CollectionResult:
        dates = candidate_dates(today or provider_today(), self.candidate_days)
        workers = min(MAX_FETCH_WORKERS, len(dates))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"fetch-{train_number}") as ex:
            results = list(ex.map(lambda d: self._fetch_one(train_number, d), dates))

        found = [r for r in results if r is not None]
        if found:
            log.info(
                "collected train=%s source=%s instances=%d/%d",
                train_number,
                self.source.kind,
                len(found),
                len(dates),
            )
            return CollectionResult(train_number=train_number, instances=found, dates=dates)

        persisted = self.store.list_instances(train_number)
        log.warning(
            "no fresh data train=%s source=%s; keeping %d persisted instances",
            train_number,
            self.source.kind,
            len(persisted),
        )
        return CollectionResult(
            train_number=train_number,
            instances=persisted,
            dates=dates,
            degraded=True,
        )
