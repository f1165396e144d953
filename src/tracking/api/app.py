"""ASGI entrypoint: uvicorn tracking.api.app:app (role from APP_ROLE)."""

from tracking.api.factory import create_app

app = create_app()
