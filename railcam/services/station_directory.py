# railcam/services/station_directory.py
from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from pathlib import Path
from urllib.parse import parse_qs, urlparse

from railcam.config import settings
from railcam.domain.models import RailcamStation
from railcam.domain.route import clean_station_name

DEFAULT_STATIONS_PATH = Path(__file__).resolve().parent.parent / "data" / "default_stations.json"

# Cities served by more than one named stop in the directory.
MULTI_FACILITY_CITIES = ("Kansas City",)

log = logging.getLogger("railcam.stations")


def _head(name: str) -> str:
    return name.split(" - ", 1)[0].strip().lower()


class StationDirectory:
    """Read-only index of railcam stations, rebuilt once per collection cycle."""

    def __init__(self, stations: Iterable[RailcamStation]):
        self._stations: tuple[RailcamStation, ...] = tuple(stations)
        self._by_lower: dict[str, RailcamStation] = {}
        for st in self._stations:
            self._by_lower.setdefault(st.name.strip().lower(), st)

    def __len__(self) -> int:
        return len(self._stations)

    def list_all(self) -> list[RailcamStation]:
        return list(self._stations)

    def list_enabled(self) -> list[RailcamStation]:
        return [st for st in self._stations if st.enabled]

    def find_station(self, raw_name: str | None) -> RailcamStation | None:
        cleaned = clean_station_name(raw_name)
        if not cleaned:
            return None
        q = cleaned.lower()

        for city in MULTI_FACILITY_CITIES:
            if q == city.lower():
                for st in self._stations:
                    if st.name.lower().startswith(q):
                        return st

        exact = self._by_lower.get(q)
        if exact is not None:
            return exact

        q_head = _head(cleaned)
        for st in self._stations:
            s_head = _head(st.name)
            if s_head and (q_head in s_head or s_head in q_head):
                return st

        for st in self._stations:
            s = st.name.lower()
            if q in s or s in q:
                return st
        return None

    def railcam_for(self, raw_name: str | None) -> RailcamStation | None:
        """Like find_station but only for enabled stations with a feed."""
        st = self.find_station(raw_name)
        if st is None or not st.has_railcam:
            return None
        return st


def embed_url(link: str | None) -> str:
    s = (link or "").strip()
    if not s:
        return ""
    u = urlparse(s)
    host = (u.netloc or "").lower()
    if "youtube.com" in host:
        if u.path == "/watch":
            vid = (parse_qs(u.query).get("v") or [""])[0]
            if vid:
                return f"https://www.youtube.com/embed/{vid}?autoplay=1"
        if u.path.startswith("/live/"):
            vid = u.path.rstrip("/").rsplit("/", 1)[-1]
            if vid:
                return f"https://www.youtube.com/embed/{vid}?autoplay=1"
    return s


def _parse_stations(data) -> list[RailcamStation]:
    rows = data.get("stations") if isinstance(data, dict) else data
    if not isinstance(rows, list):
        raise ValueError("stations config must be a list or {'stations': [...]}")
    out: list[RailcamStation] = []
    for row in rows:
        if not isinstance(row, dict) or not (row.get("name") or "").strip():
            continue
        out.append(RailcamStation.model_validate(row))
    return out


def load_default_stations() -> list[RailcamStation]:
    data = json.loads(DEFAULT_STATIONS_PATH.read_text(encoding="utf-8"))
    return _parse_stations(data)


def load_stations(path: str | Path | None = None) -> list[RailcamStation]:
    p = Path(path or settings.STATIONS_CONFIG_PATH)
    if p.exists():
        try:
            return _parse_stations(json.loads(p.read_text(encoding="utf-8")))
        except (OSError, ValueError) as e:
            log.warning("stations config unreadable path=%s err=%r; using defaults", p, e)
    return load_default_stations()


def save_stations(path: str | Path, stations: Iterable[RailcamStation]) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    payload = {"stations": [st.to_json_dict() for st in stations]}
    tmp = p.with_suffix(p.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    tmp.replace(p)


def load_directory(path: str | Path | None = None) -> StationDirectory:
    return StationDirectory(load_stations(path))
