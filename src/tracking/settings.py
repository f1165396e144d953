"""Environment-driven configuration.

Read once at process start (see ``tracking.api.factory``) and handed to the
clients that need it, so tests can build a ``Settings`` directly.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

EventIdPolicy = Literal["synthesize", "require"]

DEFAULT_GRAPH_API_VERSION = "v24.0"
DEFAULT_MAX_BODY_BYTES = 1024 * 1024


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    return int(raw) if raw.strip() else default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    return float(raw) if raw.strip() else default


@dataclass(frozen=True)
class Settings:
    """Runtime settings.

    Optional credentials left empty turn the matching capability off:
    no APIIP_ACCESS_KEY means no geo lookup, no META_PIXEL_ID or
    META_ACCESS_TOKEN means no forwarding.
    """

    database_url: str = ""
    db_password: str = ""
    db_pool_min: int = 1
    db_pool_max: int = 20
    db_connect_timeout: int = 2
    db_statement_timeout_ms: int = 5000

    apiip_access_key: str = ""
    geo_http_timeout: float = 5.0

    meta_pixel_id: str = ""
    meta_access_token: str = ""
    meta_test_event_code: str = ""
    meta_graph_api_version: str = DEFAULT_GRAPH_API_VERSION
    meta_http_timeout: float = 10.0

    event_id_policy: EventIdPolicy = "synthesize"
    api_key: str = ""
    frontend_url: str = ""
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES

    @property
    def cors_origins(self) -> list[str]:
        return [o for o in ("http://localhost:3000", self.frontend_url) if o]

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from environment variables.

        Raises:
            ValueError: If EVENT_ID_POLICY or a numeric variable is invalid.
        """
        policy = os.environ.get("EVENT_ID_POLICY", "synthesize").strip().lower()
        if policy not in ("synthesize", "require"):
            raise ValueError(f"Unknown EVENT_ID_POLICY: {policy}")

        return cls(
            database_url=os.environ.get("DATABASE_URL", ""),
            db_password=os.environ.get("DB_PASSWORD", ""),
            db_pool_min=_env_int("DB_POOL_MIN", 1),
            db_pool_max=_env_int("DB_POOL_MAX", 20),
            db_connect_timeout=_env_int("DB_CONNECT_TIMEOUT", 2),
            db_statement_timeout_ms=_env_int("DB_STATEMENT_TIMEOUT_MS", 5000),
            apiip_access_key=os.environ.get("APIIP_ACCESS_KEY", ""),
            geo_http_timeout=_env_float("GEO_HTTP_TIMEOUT", 5.0),
            meta_pixel_id=os.environ.get("META_PIXEL_ID", ""),
            meta_access_token=os.environ.get("META_ACCESS_TOKEN", ""),
            meta_test_event_code=(
                os.environ.get("META_TEST_EVENT_CODE")
                or os.environ.get("TEST_EVENT_CODE", "")
            ),
            meta_graph_api_version=os.environ.get(
                "META_GRAPH_API_VERSION", DEFAULT_GRAPH_API_VERSION
            ),
            meta_http_timeout=_env_float("META_HTTP_TIMEOUT", 10.0),
            event_id_policy=policy,  # type: ignore[arg-type]
            api_key=os.environ.get("API_KEY", ""),
            frontend_url=os.environ.get("FRONTEND_URL", ""),
            max_body_bytes=_env_int("MAX_BODY_BYTES", DEFAULT_MAX_BODY_BYTES),
        )
