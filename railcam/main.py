# railcam/main.py
from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI

from railcam.config import settings
from railcam.routers.cycle_api import router as cycle_api_router
from railcam.services.collection_cycle import get_collection_cycle

scheduler: BackgroundScheduler | None = None

logging.basicConfig(
    level=getattr(logging, (settings.LOG_LEVEL or "INFO").upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


def build_scheduler() -> BackgroundScheduler:
    s = BackgroundScheduler(timezone="UTC")
    log = logging.getLogger("scheduler")

    def job_collect():
        try:
            get_collection_cycle().run()
        except Exception:
            log.exception("collection cycle failed")

    interval = max(1, int(settings.CHECK_INTERVAL_MINUTES))
    s.add_job(
        job_collect,
        "interval",
        minutes=interval,
        # first run shortly after boot instead of one full interval later
        next_run_time=datetime.now(UTC) + timedelta(seconds=5),
        id="collect_cycle",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    log.info("collection every %d min", interval)
    return s


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    global scheduler

    if settings.SCHEDULER_ENABLED:
        scheduler = build_scheduler()
        scheduler.start()
    else:
        logging.getLogger("scheduler").info("background scheduler disabled")
    try:
        yield
    finally:
        if scheduler:
            scheduler.shutdown(wait=False)
            scheduler = None


app = FastAPI(title="railcam", lifespan=lifespan)

app.include_router(cycle_api_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
