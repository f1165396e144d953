"""Forwarding to the Meta Conversions API.

Security: raw city/state/zip/country and external_id never leave this
module; user_data carries only their normalized SHA-256 digests. fbp/fbc,
client IP and user agent are passed through as Meta requires them in
cleartext for matching. NEVER log user_data.
"""

from __future__ import annotations

from typing import Any, Mapping

import requests

from tracking.domain.identity import extract_location, first_of
from tracking.domain.models import EnrichedEvent, ForwardResult, RawEvent
from tracking.errors import ForwardingError
from tracking.infra.hashing import hash_normalized
from tracking.infra.time import unix_now
from tracking.observability.logging import get_logger
from tracking.observability.redaction import safe_log_context
from tracking.settings import DEFAULT_GRAPH_API_VERSION

logger = get_logger(__name__)

GRAPH_BASE_URL = "https://graph.facebook.com"

# Meta rejects events older than 7 days
MAX_EVENT_AGE_SECONDS = 7 * 24 * 60 * 60

# Timeout for HTTP requests (seconds)
HTTP_TIMEOUT = 10

ACTION_SOURCE = "website"
DEFAULT_EVENT_NAME = "custom_event"

# Response text kept on errors
_MAX_ERROR_BODY = 500


def build_user_data(raw: RawEvent, enriched: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """HashedUserData for raw, with location resolved against enriched.

    Keys are left out when there is no value; a location field is only
    hashed when something survives normalization.
    """
    location = extract_location(raw, enriched)
    client_ip = first_of(raw, "clientIpAddress", "client_ip_address")
    user_agent = first_of(raw, "userAgent", "user_agent")

    candidates = {
        "fbp": raw.get("fbp") or None,
        "fbc": raw.get("fbc") or None,
        "external_id": hash_normalized(first_of(raw, "external_id", "externalId")),
        "client_ip_address": client_ip,
        "client_user_agent": user_agent,
        "ct": hash_normalized(location.city),
        "st": hash_normalized(location.state),
        "zp": hash_normalized(location.zip, strip_non_alphanumeric=True),
        "country": hash_normalized(location.country),
    }
    return {k: v for k, v in candidates.items() if v}


def build_custom_data(raw: RawEvent) -> dict[str, Any]:
    """Value/currency/content fields plus free-form props, unhashed."""
    custom: dict[str, Any] = {}
    for key in ("value", "currency", "content_name", "content_category"):
        if raw.get(key):
            custom[key] = raw[key]
    props = raw.get("props")
    if isinstance(props, Mapping):
        custom.update(props)
    return custom


def build_event(
    raw: RawEvent,
    enriched: Mapping[str, Any] | None,
    event_id: str,
    event_time: int,
) -> dict[str, Any]:
    """One Conversions API event envelope."""
    return {
        "event_name": first_of(raw, "name", "event_name") or DEFAULT_EVENT_NAME,
        "event_time": event_time,
        "action_source": ACTION_SOURCE,
        "event_id": event_id,
        "user_data": build_user_data(raw, enriched),
        "custom_data": build_custom_data(raw),
    }


def is_stale(event_time: int, now: int) -> bool:
    return now - event_time > MAX_EVENT_AGE_SECONDS


class MetaConversionsClient:
    """Meta Conversions API client with admission control.

    Usage:
        client = MetaConversionsClient(pixel_id="123", access_token="EAAB...")
        result = client.forward(raw, enriched, event_id, event_time)
        # result.status is "sent" or "skipped"; transmission errors raise
    """

    def __init__(
        self,
        pixel_id: str = "",
        access_token: str = "",
        *,
        test_event_code: str = "",
        api_version: str = DEFAULT_GRAPH_API_VERSION,
        timeout: float = HTTP_TIMEOUT,
        session: requests.Session | None = None,
        base_url: str = GRAPH_BASE_URL,
    ) -> None:
        self._pixel_id = pixel_id
        self._access_token = access_token
        self._test_event_code = test_event_code
        self._api_version = api_version
        self._timeout = timeout
        self._session = session or requests.Session()
        self._base_url = base_url.rstrip("/")

    @property
    def configured(self) -> bool:
        return bool(self._pixel_id and self._access_token)

    @property
    def url(self) -> str:
        return f"{self._base_url}/{self._api_version}/{self._pixel_id}/events"

    def close(self) -> None:
        self._session.close()

    def admission(self, event_time: int, now: int | None = None) -> str | None:
        """Reason to skip forwarding, or None when the event may be sent."""
        if not self.configured:
            return "not_configured"
        if is_stale(event_time, unix_now() if now is None else now):
            return "stale_event"
        return None

    def build_body(
        self,
        raw: RawEvent,
        enriched: Mapping[str, Any] | None,
        event_id: str,
        event_time: int,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "data": [build_event(raw, enriched, event_id, event_time)],
            "access_token": self._access_token,
        }
        if self._test_event_code:
            body["test_event_code"] = self._test_event_code
        return body

    def forward(
        self,
        raw: RawEvent,
        enriched: EnrichedEvent | Mapping[str, Any] | None,
        event_id: str,
        event_time: int,
        now: int | None = None,
    ) -> ForwardResult:
        """Send one event unless admission control skips it.

        The hashed payload is rebuilt from the raw payload; enriched only
        fills in location that the payload itself does not carry.

        Raises:
            ForwardingError: Network failure or non-2xx response.
        """
        reason = self.admission(event_time, now)
        if reason is not None:
            logger.info(
                "skipping meta forwarding",
                extra={"extra_fields": safe_log_context(reason=reason, event_time=event_time)},
            )
            return ForwardResult.skipped(reason)

        record = enriched.record if isinstance(enriched, EnrichedEvent) else enriched
        body = self.build_body(raw, record, event_id, event_time)
        user_data_keys = sorted(body["data"][0]["user_data"])

        try:
            response = self._session.post(self.url, json=body, timeout=self._timeout)
        except requests.RequestException as e:
            logger.error(
                "meta forwarding failed",
                extra={
                    "extra_fields": safe_log_context(
                        provider="meta_capi", error_type=type(e).__name__
                    )
                },
            )
            raise ForwardingError(f"Meta API request failed: {type(e).__name__}") from e

        if not response.ok:
            text = response.text[:_MAX_ERROR_BODY]
            logger.error(
                "meta forwarding rejected",
                extra={
                    "extra_fields": safe_log_context(
                        provider="meta_capi", status_code=response.status_code
                    )
                },
            )
            raise ForwardingError(
                f"Meta API error: {response.status_code}",
                status_code=response.status_code,
                body=text,
            )

        try:
            parsed = response.json()
        except ValueError:
            parsed = None

        logger.info(
            "meta forwarding succeeded",
            extra={
                "extra_fields": safe_log_context(
                    provider="meta_capi",
                    status_code=response.status_code,
                    user_data_keys=",".join(user_data_keys),
                    events_received=parsed.get("events_received") if isinstance(parsed, dict) else None,
                )
            },
        )
        return ForwardResult.sent(parsed if isinstance(parsed, dict) else None)
