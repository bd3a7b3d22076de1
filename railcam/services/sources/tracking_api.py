# railcam/services/sources/tracking_api.py
from __future__ import annotations

from datetime import UTC, date, datetime

import requests

from railcam.domain.models import TrainStatus, utcnow
from railcam.domain.route import route_for_train, station_name_for_code, zone_for_station
from railcam.services.sources.base import (
    SourceAdapter,
    format_url,
    instance_id_for,
    log,
    snippet,
)

ACTUAL = "ACTUAL"
# Seconds of variance before a run counts as delayed / early.
STATUS_THRESHOLD_S = 600


def _has_actual(stop: dict) -> bool:
    for key in ("arrive", "depart"):
        rec = stop.get(key)
        if isinstance(rec, dict) and str(rec.get("type") or "").upper() == ACTUAL:
            return True
    return False


def _variance_s(stop: dict) -> int:
    for key in ("arrive", "depart"):
        rec = stop.get(key)
        if isinstance(rec, dict) and rec.get("variance") is not None:
            return int(rec["variance"])
    v = stop.get("variance")
    return int(v) if v is not None else 0


def _epoch(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def status_for_variance(variance_s: int) -> str:
    if variance_s > STATUS_THRESHOLD_S:
        return "Delayed"
    if variance_s < -STATUS_THRESHOLD_S:
        return "Early"
    return "On Time"


class TrackingApiSource(SourceAdapter):
    kind = "tracking_api"
    keys_by_next_station = False

    def __init__(
        self,
        url_template: str,
        *,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        super().__init__(timeout=timeout, session=session)
        self.url_template = url_template
        self._session.headers.update({"Accept": "application/json"})

    def build_url(self, train_number: str, service_date: date) -> str:
        return format_url(self.url_template, train_number, service_date)

    def fetch(self, train_number: str, service_date: date) -> TrainStatus | None:
        url = self.build_url(train_number, service_date)
        try:
            r = self._session.get(url, timeout=self.timeout)
            r.raise_for_status()
        except requests.RequestException as e:
            log.warning(
                "tracking_api fetch failed train=%s date=%s url=%s err=%r",
                train_number,
                service_date,
                url,
                e,
            )
            return None
        # requests' JSONDecodeError is also a RequestException, so decode outside the fetch guard
        try:
            data = r.json()
        except ValueError as e:
            log.warning(
                "tracking_api bad json train=%s date=%s err=%r body=%r",
                train_number,
                service_date,
                e,
                snippet(r.text),
            )
            return None
        return self.parse(train_number, service_date, data)

    def parse(
        self,
        train_number: str,
        service_date: date,
        data,
        *,
        now: datetime | None = None,
    ) -> TrainStatus | None:
        stops = data.get("stops") if isinstance(data, dict) else data
        if not isinstance(stops, list):
            log.warning(
                "tracking_api payload without stops train=%s date=%s raw=%r",
                train_number,
                service_date,
                snippet(data),
            )
            return None
        stops = [s for s in stops if isinstance(s, dict)]
        if not stops:
            log.info("tracking_api no stops train=%s date=%s", train_number, service_date)
            return None

        cur_idx = 0
        for i in range(len(stops) - 1, -1, -1):
            if _has_actual(stops[i]):
                cur_idx = i
                break
        next_idx = cur_idx + 1 if cur_idx < len(stops) - 1 else cur_idx
        cur, nxt = stops[cur_idx], stops[next_idx]

        next_name = station_name_for_code(nxt.get("code"))
        if not next_name:
            log.warning(
                "tracking_api unknown station code train=%s date=%s code=%r",
                train_number,
                service_date,
                nxt.get("code"),
            )
            return None

        sched = _epoch(nxt.get("sched_arrive"))
        if sched is None:
            sched = _epoch(nxt.get("sched_depart"))
        if sched is None:
            log.warning(
                "tracking_api no schedule for next stop train=%s date=%s stop=%r",
                train_number,
                service_date,
                snippet(nxt),
            )
            return None

        try:
            variance = _variance_s(nxt)
        except (TypeError, ValueError):
            log.warning(
                "tracking_api bad variance train=%s date=%s stop=%r",
                train_number,
                service_date,
                snippet(nxt),
            )
            return None

        scheduled = datetime.fromtimestamp(sched, tz=UTC)
        eta = datetime.fromtimestamp(sched - variance, tz=UTC)
        route = route_for_train(train_number)
        reached_terminus = cur_idx == len(stops) - 1 and _has_actual(cur)

        return TrainStatus(
            train_number=train_number,
            instance_id=instance_id_for(train_number, service_date),
            direction=route.direction,
            current_location=station_name_for_code(cur.get("code")),
            next_station=next_name,
            estimated_arrival=eta,
            scheduled_time=scheduled,
            status=status_for_variance(variance),
            delay_minutes=abs(variance) // 60,
            departed=reached_terminus,
            timezone=eta.astimezone(zone_for_station(next_name)).tzname(),
            last_updated=now or utcnow(),
        )
