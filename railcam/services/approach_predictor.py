# railcam/services/approach_predictor.py
from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from datetime import datetime, timedelta

from railcam.config import TrackerConfig
from railcam.domain.models import NextRailcam, TrainApproaching, TrainStatus, utcnow
from railcam.domain.route import hop_hours, route_for_train
from railcam.services.station_directory import StationDirectory, embed_url

# A run that passed more than an hour ago is never "approaching".
HARD_CUTOFF_MINUTES = -60

log = logging.getLogger("railcam.predictor")


def minutes_until(eta: datetime, now: datetime) -> int:
    return math.floor((eta - now).total_seconds() / 60)


def in_approach_window(minutes_away: int, config: TrackerConfig) -> bool:
    return (
        minutes_away <= config.approach_window_minutes
        and minutes_away >= -config.post_arrival_window_minutes
        and minutes_away > HARD_CUTOFF_MINUTES
    )


class ApproachPredictor:
    def __init__(self, directory: StationDirectory, config: TrackerConfig | None = None):
        self.directory = directory
        self.config = config or TrackerConfig()

    def predict(self, instance: TrainStatus, *, now: datetime | None = None) -> TrainApproaching:
        if not instance.next_station or instance.estimated_arrival is None:
            return TrainApproaching.not_approaching()
        station = self.directory.railcam_for(instance.next_station)
        if station is None:
            return TrainApproaching.not_approaching()

        now = now or utcnow()
        minutes_away = minutes_until(instance.estimated_arrival, now)
        if not in_approach_window(minutes_away, self.config):
            log.debug(
                "outside window train=%s instance=%s station=%s minutes=%d",
                instance.train_number,
                instance.instance_id,
                station.name,
                minutes_away,
            )
            return TrainApproaching.not_approaching()

        return TrainApproaching(
            approaching=True,
            station=station,
            eta=instance.estimated_arrival,
            minutes_away=minutes_away,
            video_reference=embed_url(station.video_reference),
        )

    def next_railcam(self, instance: TrainStatus, *, now: datetime | None = None) -> NextRailcam | None:
        """Walk the route forward to the first railcam station and estimate its ETA.

        Starting from the run's next station the estimate builds on the run's
        own ETA; starting after its current location it builds on now. Hops are
        counted from that anchor and priced at the target station's rate.
        """
        now = now or utcnow()
        try:
            route = route_for_train(instance.train_number)
        except ValueError:
            return None

        anchor = route.index_of(instance.next_station)
        if anchor is not None:
            start = anchor
            base = instance.estimated_arrival or now
        else:
            anchor = route.index_of(instance.current_location)
            if anchor is None:
                return None
            start = min(anchor + 1, len(route.stations) - 1)
            base = now

        for idx in range(start, len(route.stations)):
            name = route.stations[idx]
            station = self.directory.railcam_for(name)
            if station is None:
                continue
            eta = base + timedelta(hours=hop_hours(name, idx - anchor))
            return NextRailcam(
                station=station,
                eta=eta,
                minutes_away=max(0, minutes_until(eta, now)),
                instance_id=instance.instance_id,
            )
        return None

    def soonest_next_railcam(
        self,
        instances: Iterable[TrainStatus],
        *,
        now: datetime | None = None,
    ) -> NextRailcam | None:
        now = now or utcnow()
        best: NextRailcam | None = None
        for s in instances:
            if s.departed:
                continue
            nxt = self.next_railcam(s, now=now)
            if nxt is not None and (best is None or nxt.minutes_away < best.minutes_away):
                best = nxt
        return best
