# railcam/domain/models.py
from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DIRECTION_BY_TRAIN = {"3": "westbound", "4": "eastbound"}


def utcnow() -> datetime:
    return datetime.now(UTC)


def _as_utc(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
    return value


class _Model(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Coordinates(_Model):
    lat: float
    lng: float


class RailcamStation(_Model):
    name: str
    video_reference: str = Field(
        "",
        validation_alias=AliasChoices("videoReference", "video_reference", "youtubeLink"),
    )
    enabled: bool = True
    scenic: bool = False
    coordinates: Coordinates | None = None

    @property
    def has_railcam(self) -> bool:
        return self.enabled and bool(self.video_reference)


class TrainStatus(_Model):
    """One tracked run ("instance") of a train as produced by a source adapter."""

    train_number: str
    instance_id: int
    direction: str = ""
    current_location: str | None = None
    next_station: str | None = None
    estimated_arrival: datetime | None = None
    scheduled_time: datetime | None = None
    status: str = "On Time"
    delay_minutes: int | None = None
    departed: bool = False
    timezone: str | None = None
    last_updated: datetime = Field(default_factory=utcnow)

    @field_validator("estimated_arrival", "scheduled_time", "last_updated", mode="after")
    @classmethod
    def _normalize_tz(cls, v):
        return _as_utc(v)

    @field_validator("delay_minutes", mode="after")
    @classmethod
    def _non_negative_delay(cls, v):
        if v is None:
            return None
        return abs(int(v))

    def model_post_init(self, __context: Any) -> None:
        if not self.direction:
            self.direction = DIRECTION_BY_TRAIN.get(self.train_number, "")

    @property
    def is_predictable(self) -> bool:
        return bool(self.next_station) and self.estimated_arrival is not None


class TrainApproaching(_Model):
    approaching: bool = False
    station: RailcamStation | None = None
    eta: datetime | None = None
    minutes_away: int | None = None
    video_reference: str | None = None

    @field_validator("eta", mode="after")
    @classmethod
    def _normalize_tz(cls, v):
        return _as_utc(v)

    @classmethod
    def not_approaching(cls) -> TrainApproaching:
        return cls(approaching=False)


class NextRailcam(_Model):
    station: RailcamStation
    eta: datetime
    minutes_away: int
    instance_id: int | None = None

    @field_validator("eta", mode="after")
    @classmethod
    def _normalize_tz(cls, v):
        return _as_utc(v)


class CurrentStatus(_Model):
    train3: TrainApproaching = Field(default_factory=TrainApproaching.not_approaching)
    train4: TrainApproaching = Field(default_factory=TrainApproaching.not_approaching)
    next_railcam: dict[str, NextRailcam] = Field(default_factory=dict)
    last_updated: datetime = Field(default_factory=utcnow)

    @field_validator("last_updated", mode="after")
    @classmethod
    def _normalize_tz(cls, v):
        return _as_utc(v)

    def for_train(self, train_number: str) -> TrainApproaching:
        return getattr(self, f"train{train_number}", TrainApproaching.not_approaching())
