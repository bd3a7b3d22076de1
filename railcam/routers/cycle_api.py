# railcam/routers/cycle_api.py
from __future__ import annotations

from fastapi import APIRouter, Header, HTTPException, Query

from railcam.config import settings
from railcam.services.collection_cycle import get_collection_cycle

router = APIRouter(tags=["cycle"])


@router.get("/_health")
def health():
    return {"ok": True}


@router.post("/admin/collect")
def collect(
    force: bool = Query(default=False, description="skip the minimum-interval throttle"),
    x_task_token: str | None = Header(default=None, alias="X-Task-Token"),
):
    required = getattr(settings, "INTERNAL_TASK_TOKEN", None)
    if required and (x_task_token or "") != required:
        raise HTTPException(status_code=401, detail="unauthorized")

    result = get_collection_cycle().run(force=force)
    return {"ok": True, **result}


@router.get("/_debug/cycle")
def debug_cycle(limit: int = Query(default=50, ge=0, le=200)):
    cycle = get_collection_cycle()
    return {"state": cycle.debug_state(), "events": cycle.debug_events(limit)}
