"""Worker/internal routes (APP_ROLE=worker)."""

from fastapi import APIRouter, Request

from tracking.api.routes import tasks_events

router = APIRouter()


@router.get("/tasks/health")
def tasks_health(request: Request) -> dict:
    """Tasks subsystem health check; reports whether the pool is open."""
    resources = getattr(request.app.state, "resources", None)
    db_open = bool(resources is not None and resources.db.is_open)
    return {"status": "ok" if db_open else "degraded", "subsystem": "tasks", "db": db_open}


router.include_router(tasks_events.router)
