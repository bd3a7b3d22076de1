from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from railcam.domain.models import TrainStatus
from railcam.services.station_directory import StationDirectory, load_default_stations

NOW = datetime(2025, 4, 25, 18, 0, tzinfo=UTC)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def directory() -> StationDirectory:
    return StationDirectory(load_default_stations())


@pytest.fixture
def make_status(now):
    """Factory for TrainStatus records with an ETA relative to the fixed clock."""

    def _make(
        train: str = "3",
        instance_id: int = 2025042503,
        next_station: str | None = "Kingman",
        minutes: float | None = 15,
        **kw,
    ) -> TrainStatus:
        eta = now + timedelta(minutes=minutes) if minutes is not None else None
        return TrainStatus(
            train_number=train,
            instance_id=instance_id,
            next_station=next_station,
            estimated_arrival=eta,
            last_updated=now,
            **kw,
        )

    return _make
