"""IP geolocation via apiip.net.

Enrichment is best effort: a missing IP or access key skips the lookup, and
any provider failure is logged and returned as a failed outcome. Nothing
here raises into the pipeline.
"""

from __future__ import annotations

from typing import Any, Mapping

import requests

from tracking.domain.models import GeoLookupResult, StepOutcome
from tracking.observability.logging import get_logger
from tracking.observability.redaction import safe_log_context

logger = get_logger(__name__)

APIIP_URL = "https://apiip.net/api/check"

# Timeout for HTTP requests (seconds)
HTTP_TIMEOUT = 5


def _value(result: Mapping[str, Any], key: str) -> Any:
    """Provider value or None; falsy provider values count as absent."""
    value = result.get(key)
    return value if value else None


def _nested_value(result: Mapping[str, Any], key: str, sub: str) -> Any:
    node = result.get(key)
    if isinstance(node, Mapping):
        return _value(node, sub)
    return None


def _timezone(result: Mapping[str, Any]) -> Any:
    tz = result.get("timezone")
    if isinstance(tz, Mapping):
        return _value(tz, "id")
    return tz or None


def map_apiip_response(result: Mapping[str, Any]) -> GeoLookupResult:
    """Map an apiip.net response onto the events table geo fields."""
    return GeoLookupResult(
        city=_value(result, "city"),
        state=_value(result, "regionName"),
        zip=_value(result, "postalCode"),
        country=_value(result, "countryCode"),
        country_name=_value(result, "countryName"),
        region_name=_value(result, "regionName"),
        latitude=_value(result, "latitude"),
        longitude=_value(result, "longitude"),
        continent_code=_value(result, "continentCode"),
        continent_name=_value(result, "continentName"),
        timezone=_timezone(result),
        currency_code=_nested_value(result, "currency", "code"),
        currency_symbol=_nested_value(result, "currency", "symbol"),
        isp=_value(result, "isp"),
        asn=_value(result, "asn"),
    )


class ApiipClient:
    """apiip.net lookup client.

    Usage:
        client = ApiipClient(access_key=settings.apiip_access_key)
        outcome = client.enrich("200.147.67.142")
        if outcome.status == "ok":
            city = outcome.value.city
    """

    def __init__(
        self,
        access_key: str = "",
        *,
        timeout: float = HTTP_TIMEOUT,
        session: requests.Session | None = None,
        base_url: str = APIIP_URL,
    ) -> None:
        self._access_key = access_key
        self._timeout = timeout
        self._session = session or requests.Session()
        self._base_url = base_url

    @property
    def configured(self) -> bool:
        return bool(self._access_key)

    def close(self) -> None:
        self._session.close()

    def enrich(self, ip: str | None) -> StepOutcome[GeoLookupResult]:
        """Look up geo data for ip.

        Returns:
            ok with the mapped result, skipped ("no_ip", "not_configured")
            without any network call, or failed with the underlying error.
        """
        if not ip:
            logger.info("skipping geo lookup: no ip")
            return StepOutcome.skipped("no_ip")
        if not self._access_key:
            logger.info("skipping geo lookup: APIIP_ACCESS_KEY missing")
            return StepOutcome.skipped("not_configured")

        try:
            response = self._session.get(
                self._base_url,
                params={"ip": ip, "accessKey": self._access_key},
                timeout=self._timeout,
            )
            response.raise_for_status()
            result = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(
                "geo lookup failed",
                extra={
                    "extra_fields": safe_log_context(
                        provider="apiip", error_type=type(e).__name__
                    )
                },
            )
            return StepOutcome.failed("provider_error", e)

        if not isinstance(result, Mapping):
            logger.warning(
                "geo lookup returned non-object response",
                extra={
                    "extra_fields": safe_log_context(
                        provider="apiip", response_type=type(result).__name__
                    )
                },
            )
            return StepOutcome.failed("invalid_response")

        geo = map_apiip_response(result)
        logger.info(
            "geo lookup completed",
            extra={
                "extra_fields": safe_log_context(
                    provider="apiip",
                    fields=sorted(geo.present()),
                    country=geo.country,
                )
            },
        )
        return StepOutcome.ok(geo)
