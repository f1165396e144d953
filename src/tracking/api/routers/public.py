"""Public-facing routes (APP_ROLE=public)."""

from fastapi import APIRouter

from tracking.api.routes import events

# Mounted for every role
health_router = APIRouter()

router = APIRouter()


@health_router.get("/health")
def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


router.include_router(events.router)
