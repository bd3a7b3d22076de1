# railcam/domain/route.py
from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass
from functools import lru_cache
from zoneinfo import ZoneInfo

from railcam.domain.models import DIRECTION_BY_TRAIN

# Chicago -> Los Angeles. Eastbound is the same list reversed.
WESTBOUND_STATIONS: tuple[str, ...] = (
    "Chicago",
    "Naperville",
    "Mendota",
    "Princeton",
    "Galesburg",
    "Fort Madison",
    "La Plata",
    "Kansas City",
    "Lawrence",
    "Topeka",
    "Newton",
    "Hutchinson",
    "Dodge City",
    "Garden City",
    "Lamar",
    "La Junta",
    "Trinidad",
    "Raton",
    "Las Vegas",
    "Lamy",
    "Albuquerque",
    "Gallup",
    "Winslow",
    "Flagstaff",
    "Kingman",
    "Needles",
    "Barstow",
    "Victorville",
    "San Bernardino",
    "Riverside",
    "Fullerton",
    "Los Angeles",
)

STATION_NAMES_BY_CODE: dict[str, str] = {
    "CHI": "Chicago, IL",
    "NPV": "Naperville, IL",
    "MDT": "Mendota, IL",
    "PCT": "Princeton, IL",
    "GBB": "Galesburg, IL",
    "FMD": "Fort Madison, IA",
    "LAP": "La Plata, MO",
    "KCY": "Kansas City, MO",
    "LRC": "Lawrence, KS",
    "TOP": "Topeka, KS",
    "NEW": "Newton, KS",
    "HUT": "Hutchinson, KS",
    "DDG": "Dodge City, KS",
    "GCK": "Garden City, KS",
    "LMR": "Lamar, CO",
    "LAJ": "La Junta, CO",
    "TRI": "Trinidad, CO",
    "RAT": "Raton, NM",
    "LSV": "Las Vegas, NM",
    "LMY": "Lamy, NM",
    "ABQ": "Albuquerque, NM",
    "GLP": "Gallup, NM",
    "WLO": "Winslow, AZ",
    "FLG": "Flagstaff, AZ",
    "KNG": "Kingman, AZ",
    "NDL": "Needles, CA",
    "BAR": "Barstow, CA",
    "VRV": "Victorville, CA",
    "SNB": "San Bernardino, CA",
    "RIV": "Riverside, CA",
    "FUL": "Fullerton, CA",
    "LAX": "Los Angeles, CA",
}

# Contiguous partition of the route. Arizona keeps MST all year.
ZONE_GROUPS: tuple[tuple[str, tuple[str, ...]], ...] = (
    (
        "America/Los_Angeles",
        (
            "Los Angeles",
            "Fullerton",
            "Riverside",
            "San Bernardino",
            "Victorville",
            "Barstow",
            "Needles",
        ),
    ),
    ("America/Phoenix", ("Kingman", "Flagstaff", "Winslow")),
    (
        "America/Denver",
        (
            "Gallup",
            "Albuquerque",
            "Lamy",
            "Las Vegas",
            "Raton",
            "Trinidad",
            "La Junta",
            "Lamar",
        ),
    ),
    (
        "America/Chicago",
        (
            "Garden City",
            "Dodge City",
            "Hutchinson",
            "Newton",
            "Topeka",
            "Lawrence",
            "Kansas City",
            "La Plata",
            "Fort Madison",
            "Galesburg",
            "Princeton",
            "Mendota",
            "Naperville",
            "Chicago",
        ),
    ),
)

HOURS_PER_HOP = 2
SLOW_HOP_HOURS = 3
# Targets past the long-haul desert segments are costed at the slow rate for every hop.
SLOW_SEGMENT_STATIONS = frozenset({"Barstow", "Needles", "Kingman"})

_REGION_SUFFIX_RE = re.compile(r",\s*[A-Za-z]{2}\s*$")


def clean_station_name(raw: str | None) -> str:
    """'Las Vegas, NM ' -> 'Las Vegas'."""
    s = (raw or "").strip()
    return _REGION_SUFFIX_RE.sub("", s).strip()


def names_match(a: str | None, b: str | None) -> bool:
    x = clean_station_name(a).lower()
    y = clean_station_name(b).lower()
    if not x or not y:
        return False
    return x == y or x in y or y in x


@dataclass(frozen=True)
class Route:
    train_number: str
    direction: str
    stations: tuple[str, ...]

    @property
    def origin(self) -> str:
        return self.stations[0]

    @property
    def final_destination(self) -> str:
        return self.stations[-1]

    def index_of(self, name: str | None) -> int | None:
        cleaned = clean_station_name(name).lower()
        if not cleaned:
            return None
        for i, st in enumerate(self.stations):
            if st.lower() == cleaned:
                return i
        for i, st in enumerate(self.stations):
            if names_match(st, cleaned):
                return i
        return None

    def next_after(self, name: str | None) -> str | None:
        """Station following `name`; the terminus maps to itself."""
        idx = self.index_of(name)
        if idx is None:
            return None
        if idx == len(self.stations) - 1:
            return self.stations[idx]
        return self.stations[idx + 1]

    def is_final_destination(self, name: str | None) -> bool:
        return clean_station_name(name).lower() == self.final_destination.lower()

    def reached_final_destination(self, name: str | None) -> bool:
        return names_match(name, self.final_destination)


@lru_cache(maxsize=4)
def route_for_train(train_number: str) -> Route:
    direction = DIRECTION_BY_TRAIN.get(str(train_number))
    if direction is None:
        raise ValueError(f"unknown train number: {train_number!r}")
    stations = WESTBOUND_STATIONS if direction == "westbound" else WESTBOUND_STATIONS[::-1]
    return Route(train_number=str(train_number), direction=direction, stations=stations)


def station_name_for_code(code: str | None) -> str | None:
    if not code:
        return None
    return STATION_NAMES_BY_CODE.get(code.strip().upper())


def _default_zone_name() -> str:
    counts = Counter({zone: len(names) for zone, names in ZONE_GROUPS})
    return counts.most_common(1)[0][0]


DEFAULT_ZONE_NAME = _default_zone_name()


def zone_for_station(name: str | None) -> ZoneInfo:
    cleaned = clean_station_name(name).lower()
    if cleaned:
        for zone, names in ZONE_GROUPS:
            if any(n.lower() == cleaned for n in names):
                return ZoneInfo(zone)
        for zone, names in ZONE_GROUPS:
            if any(names_match(n, cleaned) for n in names):
                return ZoneInfo(zone)
    return ZoneInfo(DEFAULT_ZONE_NAME)


def hop_hours(station_name: str, hops: int) -> int:
    """Hours to reach station_name, hops stops ahead; the target sets the rate."""
    per_hop = SLOW_HOP_HOURS if station_name in SLOW_SEGMENT_STATIONS else HOURS_PER_HOP
    return hops * per_hop
