from __future__ import annotations

import logging
from datetime import UTC, date, datetime
from unittest.mock import MagicMock

import requests

from railcam.services.sources.base import candidate_dates, format_url, instance_id_for
from railcam.services.sources.tracking_api import TrackingApiSource

SERVICE_DATE = date(2025, 4, 25)
T = 1745622000  # 2025-04-25T23:00:00Z


def _stops(*, variance=300, actual_idx=1):
    codes = ["CHI", "NPV", "MDT", "PCT", "GBB"]
    stops = []
    for i, code in enumerate(codes):
        stop = {
            "code": code,
            "sched_arrive": T + (i - 2) * 1800,
            "sched_depart": T + (i - 2) * 1800 + 120,
        }
        if i <= actual_idx:
            stop["depart"] = {"type": "ACTUAL", "variance": 60}
        elif i == actual_idx + 1:
            stop["arrive"] = {"type": "ESTIMATED", "variance": variance}
        stops.append(stop)
    return stops


def _source(session=None):
    return TrackingApiSource("https://api.example/{year}/{month}/{day}/{train}", session=session or MagicMock())


def test_current_and_next_stop_from_last_actual(now):
    s = _source().parse("3", SERVICE_DATE, _stops(), now=now)
    assert s is not None
    assert s.current_location == "Naperville, IL"
    assert s.next_station == "Mendota, IL"
    assert s.estimated_arrival == datetime.fromtimestamp(T - 300, tz=UTC)
    assert s.scheduled_time == datetime.fromtimestamp(T, tz=UTC)
    assert s.delay_minutes == 5
    assert s.status == "On Time"
    assert s.instance_id == 2025042503
    assert s.direction == "westbound"
    assert s.timezone == "CDT"
    assert not s.departed


def test_no_actual_uses_first_stop():
    stops = _stops(actual_idx=-1)
    s = _source().parse("3", SERVICE_DATE, {"stops": stops})
    assert s.current_location == "Chicago, IL"
    assert s.next_station == "Naperville, IL"


def test_terminus_reached_marks_departed():
    s = _source().parse("3", SERVICE_DATE, _stops(actual_idx=4))
    assert s.current_location == "Galesburg, IL"
    assert s.next_station == "Galesburg, IL"
    assert s.departed


def test_explicit_zero_variance_is_honored():
    stops = _stops()
    stops[2]["arrive"]["variance"] = 0
    stops[2]["variance"] = 900
    s = _source().parse("3", SERVICE_DATE, stops)
    assert s.estimated_arrival == datetime.fromtimestamp(T, tz=UTC)
    assert s.delay_minutes == 0
    assert s.status == "On Time"


def test_missing_variance_defaults_to_zero():
    stops = _stops()
    del stops[2]["arrive"]
    s = _source().parse("3", SERVICE_DATE, stops)
    assert s.estimated_arrival == datetime.fromtimestamp(T, tz=UTC)


def test_status_thresholds():
    late = _source().parse("3", SERVICE_DATE, _stops(variance=900))
    early = _source().parse("3", SERVICE_DATE, _stops(variance=-900))
    edge = _source().parse("3", SERVICE_DATE, _stops(variance=600))
    assert (late.status, late.delay_minutes) == ("Delayed", 15)
    assert (early.status, early.delay_minutes) == ("Early", 15)
    assert edge.status == "On Time"


def test_unknown_code_is_not_found():
    stops = _stops()
    stops[2]["code"] = "ZZZ"
    assert _source().parse("3", SERVICE_DATE, stops) is None


def test_malformed_payloads():
    src = _source()
    assert src.parse("3", SERVICE_DATE, {"error": "nope"}) is None
    assert src.parse("3", SERVICE_DATE, []) is None
    stops = _stops()
    stops[2]["sched_arrive"] = None
    stops[2]["sched_depart"] = "soon"
    assert src.parse("3", SERVICE_DATE, stops) is None


def test_fetch_builds_url_and_parses():
    session = MagicMock()
    resp = MagicMock()
    resp.json.return_value = _stops()
    session.get.return_value = resp

    s = _source(session).fetch("4", SERVICE_DATE)

    assert s is not None
    assert s.instance_id == 2025042504
    url = session.get.call_args[0][0]
    assert url == "https://api.example/2025/04/25/4"


def test_fetch_network_error_is_not_found():
    session = MagicMock()
    session.get.side_effect = requests.ConnectionError("down")
    assert _source(session).fetch("3", SERVICE_DATE) is None


def test_fetch_bad_json_logs_body_snippet(caplog):
    resp = requests.Response()
    resp.status_code = 200
    resp._content = b"<html>maintenance page</html>"
    resp.encoding = "utf-8"
    session = MagicMock()
    session.get.return_value = resp
    caplog.set_level(logging.WARNING, logger="railcam.sources")

    assert _source(session).fetch("3", SERVICE_DATE) is None

    assert "bad json" in caplog.text
    assert "train=3" in caplog.text
    assert "date=2025-04-25" in caplog.text
    assert "maintenance page" in caplog.text
    assert "fetch failed" not in caplog.text


def test_instance_id_and_candidate_dates():
    assert instance_id_for("3", date(2025, 1, 2)) == 2025010203
    assert candidate_dates(SERVICE_DATE) == [
        date(2025, 4, 23),
        date(2025, 4, 24),
        date(2025, 4, 25),
    ]
    assert format_url("{train}-{year}{month}{day}", "4", date(2025, 1, 2)) == "4-20250102"
