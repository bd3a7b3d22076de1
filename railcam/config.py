# railcam/config.py
from __future__ import annotations

from dataclasses import dataclass

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # --- Storage ---
    DATA_DIR: str = "data"
    STATIONS_CONFIG_PATH: str = "data/stations-config.json"

    # --- Sources ---
    TRAIN_SOURCE: str = "tracking_api"  # "tracking_api" | "status_page"
    TRACKING_API_URL: str = (
        "https://asm-backend.transitdocs.com/train/{year}/{month}/{day}/AMTRAK/{train}"
    )
    STATUS_PAGE_URL: str = (
        "https://dixielandsoftware.net/cgi-bin/gettrain.pl"
        "?seltrain={train}&selyear={year}&selmonth={month}&selday={day}"
    )
    HTTP_TIMEOUT: float = 10.0
    STATUS_PAGE_RETRY_DELAY_S: float = 5.0

    # --- Prediction / reconciliation ---
    APPROACH_WINDOW_MINUTES: int = 30
    POST_ARRIVAL_WINDOW_MINUTES: int = 30
    MAX_INSTANCES_PER_TRAIN: int = 3
    CANDIDATE_DAYS: int = 3
    PRUNE_WINDOW_HOURS: float = 3.0

    # --- Scheduling ---
    CHECK_INTERVAL_MINUTES: int = 15
    MIN_CYCLE_INTERVAL_MINUTES: int = 5
    SCHEDULER_ENABLED: bool = True
    INTERNAL_TASK_TOKEN: str | None = None

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )


settings = Settings()


@dataclass(frozen=True)
class TrackerConfig:
    """Knobs read once per collection cycle and handed to each component."""

    approach_window_minutes: int = 30
    post_arrival_window_minutes: int = 30
    max_instances_per_train: int = 3
    candidate_days: int = 3
    prune_window_hours: float = 3.0
    source_kind: str = "tracking_api"
    tracking_api_url: str = Settings.model_fields["TRACKING_API_URL"].default
    status_page_url: str = Settings.model_fields["STATUS_PAGE_URL"].default
    http_timeout: float = 10.0
    status_page_retry_delay_s: float = 5.0
    min_cycle_interval_minutes: int = 5

    @classmethod
    def from_settings(cls, s: Settings | None = None) -> TrackerConfig:
        s = s or settings
        return cls(
            approach_window_minutes=int(s.APPROACH_WINDOW_MINUTES),
            post_arrival_window_minutes=int(s.POST_ARRIVAL_WINDOW_MINUTES),
            max_instances_per_train=max(1, int(s.MAX_INSTANCES_PER_TRAIN)),
            candidate_days=max(1, int(s.CANDIDATE_DAYS)),
            prune_window_hours=float(s.PRUNE_WINDOW_HOURS),
            source_kind=(s.TRAIN_SOURCE or "tracking_api").strip().lower(),
            tracking_api_url=s.TRACKING_API_URL,
            status_page_url=s.STATUS_PAGE_URL,
            http_timeout=float(s.HTTP_TIMEOUT),
            status_page_retry_delay_s=float(s.STATUS_PAGE_RETRY_DELAY_S),
            min_cycle_interval_minutes=int(s.MIN_CYCLE_INTERVAL_MINUTES),
        )
