# railcam/services/sources/status_page.py
from __future__ import annotations

import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from datetime import time as dtime

import requests
from bs4 import BeautifulSoup

from railcam.domain.models import TrainStatus, utcnow
from railcam.domain.route import names_match, route_for_train, zone_for_station
from railcam.services.common_fetch import fetch_with_retry
from railcam.services.sources.base import (
    SourceAdapter,
    format_url,
    instance_id_for,
    log,
    snippet,
)

AUTH_ERROR_MARKER = "You don't have the necessary authorization"
NO_DATA_MARKER = "No status file was found for train"
STOP_TABLE_ID = "m1"
# Used when the next stop comes from the route list and the page gave no time.
DEFAULT_SCHEDULED_TEXT = "12:00P"

_CODE_RE = re.compile(r"\s*\(([A-Z]{3})\)\s*$")
_TIME_RE = re.compile(r"(\d{1,2}):?(\d{2})\s*([AP])", re.IGNORECASE)
_DEPARTED_RE = re.compile(r"Dp\s+\d{1,2}:?\d{2}\s*[AP]", re.IGNORECASE)
_ARRIVED_RE = re.compile(r"Ar\s+\d{1,2}:?\d{2}\s*[AP]", re.IGNORECASE)
_SCHED_AR_RE = re.compile(r"Ar\s+(\d{1,2}:?\d{2}\s*[AP])", re.IGNORECASE)
_SCHED_DP_RE = re.compile(r"Dp\s+(\d{1,2}:?\d{2}\s*[AP])", re.IGNORECASE)
_DELAY_HM_RE = re.compile(r"(\d+)\s+hours?,\s+(\d+)\s+minutes?\s+late", re.IGNORECASE)
_DELAY_M_RE = re.compile(r"(\d+)\s+minutes?\s+late", re.IGNORECASE)


@dataclass(frozen=True)
class StopRow:
    code: str | None
    name: str
    scheduled_text: str


def parse_clock(text: str | None) -> tuple[int, int] | None:
    """'2:25P' / '225P' / '12:05A' -> (hour24, minute)."""
    m = _TIME_RE.search(text or "")
    if not m:
        return None
    hour, minute, ampm = int(m.group(1)), int(m.group(2)), m.group(3).upper()
    if hour > 12 or minute > 59:
        return None
    if ampm == "P" and hour < 12:
        hour += 12
    elif ampm == "A" and hour == 12:
        hour = 0
    return hour, minute


def _scheduled_time_text(cell_text: str) -> str:
    for rx in (_SCHED_AR_RE, _SCHED_DP_RE):
        m = rx.search(cell_text)
        if m:
            return m.group(1)
    m = _TIME_RE.search(cell_text)
    return m.group(0) if m else ""


def parse_delay(text: str) -> tuple[int, str] | None:
    m = _DELAY_HM_RE.search(text)
    if m:
        h, mi = int(m.group(1)), int(m.group(2))
        label = f"{h} hour{'s' if h != 1 else ''}, {mi} minute{'s' if mi != 1 else ''} late"
        return h * 60 + mi, label
    m = _DELAY_M_RE.search(text)
    if m:
        mi = int(m.group(1))
        return mi, f"{mi} minutes late"
    if "on time" in text.lower():
        return 0, "On Time"
    return None


def _has_evidence(actual_text: str) -> bool:
    if _DEPARTED_RE.search(actual_text):
        return True
    if "Arrived:" in actual_text and "Departed:" not in actual_text:
        return True
    return bool(_ARRIVED_RE.search(actual_text))


class StatusPageSource(SourceAdapter):
    kind = "status_page"
    keys_by_next_station = True

    def __init__(
        self,
        url_template: str,
        *,
        timeout: float = 10.0,
        retry_delay: float = 5.0,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(timeout=timeout, session=session)
        self.url_template = url_template
        self.retry_delay = float(retry_delay)
        self._sleep = sleep

    def build_url(self, train_number: str, service_date: date) -> str:
        return format_url(self.url_template, train_number, service_date)

    def _get_once(self, url: str) -> tuple[str | None, str | None]:
        try:
            r = self._session.get(url, timeout=self.timeout)
            r.raise_for_status()
        except requests.HTTPError as e:
            code = getattr(e.response, "status_code", None)
            return None, f"http_status:{code}"
        except requests.RequestException as e:
            return None, f"network: {e!r}"
        html = r.text or ""
        if AUTH_ERROR_MARKER in html:
            return None, "auth_error"
        return html, None

    @staticmethod
    def _retryable(err: str | None) -> bool:
        # Client errors other than the page's own auth message will not heal in 5s.
        return not (err or "").startswith("http_status:4")

    def fetch(self, train_number: str, service_date: date) -> TrainStatus | None:
        url = self.build_url(train_number, service_date)
        html, err, used = fetch_with_retry(
            lambda: self._get_once(url),
            attempts=2,
            delay=self.retry_delay,
            should_retry=self._retryable,
            sleep=self._sleep,
        )
        if html is None:
            log.warning(
                "status_page gave up train=%s date=%s attempts=%d err=%s",
                train_number,
                service_date,
                used,
                err,
            )
            return None
        return self.parse(train_number, service_date, html)

    def parse(
        self,
        train_number: str,
        service_date: date,
        html: str,
        *,
        now: datetime | None = None,
    ) -> TrainStatus | None:
        if NO_DATA_MARKER in html:
            log.info("status_page no status file train=%s date=%s", train_number, service_date)
            return None

        soup = BeautifulSoup(html, "html.parser")
        table = soup.find(id=STOP_TABLE_ID)
        if table is None:
            log.warning(
                "status_page no stop table train=%s date=%s html=%r",
                train_number,
                service_date,
                snippet(html),
            )
            return None

        last_seen: StopRow | None = None
        first_pending: StopRow | None = None
        delay_minutes = 0
        status = "On Time"

        for row in table.find_all("tr")[1:]:
            cells = row.find_all("td")
            if len(cells) < 3:
                continue
            station_text = cells[0].get_text(" ", strip=True)
            m = _CODE_RE.search(station_text)
            if not m:
                continue
            stop = StopRow(
                code=m.group(1),
                name=_CODE_RE.sub("", station_text).strip().rstrip(" *"),
                scheduled_text=_scheduled_time_text(cells[1].get_text(" ", strip=True)),
            )
            actual_text = cells[2].get_text(" ", strip=True)

            if _has_evidence(actual_text):
                last_seen = stop
                parsed = parse_delay(actual_text)
                if parsed is not None:
                    delay_minutes, status = parsed
                continue

            if first_pending is None:
                first_pending = stop

        route = route_for_train(train_number)
        departed = False

        if last_seen is not None:
            if route.reached_final_destination(last_seen.name):
                chosen = last_seen
                departed = True
            else:
                after = route.next_after(last_seen.name)
                if after is not None:
                    if first_pending is not None and names_match(first_pending.name, after):
                        chosen = first_pending
                    else:
                        sched_text = (
                            first_pending.scheduled_text
                            if first_pending is not None and first_pending.scheduled_text
                            else DEFAULT_SCHEDULED_TEXT
                        )
                        chosen = StopRow(code=None, name=after, scheduled_text=sched_text)
                elif first_pending is not None:
                    chosen = first_pending
                else:
                    chosen = last_seen
                    departed = True
        elif first_pending is not None:
            chosen = first_pending
        else:
            log.warning(
                "status_page no stations parsed train=%s date=%s html=%r",
                train_number,
                service_date,
                snippet(html),
            )
            return None

        clock = parse_clock(chosen.scheduled_text)
        if clock is None:
            log.warning(
                "status_page unparsable time train=%s date=%s station=%s text=%r",
                train_number,
                service_date,
                chosen.name,
                chosen.scheduled_text,
            )
            return None

        zone = zone_for_station(chosen.name)
        scheduled = datetime.combine(service_date, dtime(*clock), tzinfo=zone)
        eta = scheduled + timedelta(minutes=delay_minutes)

        return TrainStatus(
            train_number=train_number,
            instance_id=instance_id_for(train_number, service_date),
            direction=route.direction,
            current_location=last_seen.name if last_seen else None,
            next_station=chosen.name,
            estimated_arrival=eta,
            scheduled_time=scheduled,
            status=status,
            delay_minutes=delay_minutes or None,
            departed=departed,
            timezone=eta.tzname(),
            last_updated=now or utcnow(),
        )
