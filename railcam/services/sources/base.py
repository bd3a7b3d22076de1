# railcam/services/sources/base.py
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import requests

from railcam.config import TrackerConfig
from railcam.domain.models import TrainStatus

# Calendar dates are those of the providers (US Central).
PROVIDER_TZ = "America/Chicago"
SNIPPET_CHARS = 300

log = logging.getLogger("railcam.sources")


def instance_id_for(train_number: str, service_date: date) -> int:
    """Stable id for one run: 2025-04-25 / train 4 -> 2025042504."""
    return int(service_date.strftime("%Y%m%d")) * 100 + int(train_number)


def provider_today(now: datetime | None = None) -> date:
    tz = ZoneInfo(PROVIDER_TZ)
    return (now.astimezone(tz) if now else datetime.now(tz)).date()


def candidate_dates(today: date, days: int = 3) -> list[date]:
    """Oldest first: [today-2, today-1, today] for days=3."""
    return [today - timedelta(days=i) for i in reversed(range(max(1, days)))]


def format_url(template: str, train_number: str, service_date: date) -> str:
    return template.format(
        train=train_number,
        year=f"{service_date.year:04d}",
        month=f"{service_date.month:02d}",
        day=f"{service_date.day:02d}",
    )


def snippet(text: object) -> str:
    s = text if isinstance(text, str) else repr(text)
    return s[:SNIPPET_CHARS]


class SourceAdapter(ABC):
    kind: str = ""
    # Persisted instances from this source are matched on next station as well as id.
    keys_by_next_station: bool = False

    def __init__(self, *, timeout: float = 10.0, session: requests.Session | None = None):
        self.timeout = float(timeout)
        self._session = session or requests.Session()

    @abstractmethod
    def fetch(self, train_number: str, service_date: date) -> TrainStatus | None:
        """One record for (train, date) or None. Never raises."""
        raise NotImplementedError


def build_source(config: TrackerConfig, session: requests.Session | None = None) -> SourceAdapter:
    from railcam.services.sources.status_page import StatusPageSource
    from railcam.services.sources.tracking_api import TrackingApiSource

    kind = (config.source_kind or "").strip().lower()
    if kind == StatusPageSource.kind:
        return StatusPageSource(
            config.status_page_url,
            timeout=config.http_timeout,
            retry_delay=config.status_page_retry_delay_s,
            session=session,
        )
    if kind != TrackingApiSource.kind:
        log.warning("unknown TRAIN_SOURCE=%r, using %s", kind, TrackingApiSource.kind)
    return TrackingApiSource(config.tracking_api_url, timeout=config.http_timeout, session=session)
