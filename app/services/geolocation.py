import logging
from typing import Optional

import httpx

from app.core.config import Settings
from app.core.errors import Degraded
from app.schemas.geo import GeolocationResult

logger = logging.getLogger(__name__)

# Fixed policy list; not configuration.
HIGH_RISK_COUNTRIES = frozenset({
    "KP",  # North Korea
    "IR",  # Iran
    "SY",  # Syria
    "CU",  # Cuba
    "SD",  # Sudan
    "SO",  # Somalia
    "YE",  # Yemen
    "AF",  # Afghanistan
    "IQ",  # Iraq
    "LY",  # Libya
})


def is_high_risk(country_code: Optional[str]) -> bool:
    return bool(country_code) and country_code.upper() in HIGH_RISK_COUNTRIES


def _text(value) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    return None


def _coordinate(value) -> Optional[float]:
    # 0.0 is a real coordinate; bools are not
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def unresolved(reason: Optional[str] = None, cause: Optional[str] = None) -> GeolocationResult:
    return GeolocationResult(degraded=Degraded(reason, cause) if reason else None)


class GeolocationResolver:
    """
    Maps an IP address to a coarse location via an ipapi.co-style provider.

    Never raises: every failure resolves to an all-null location so that
    logging and geofencing keep working while the provider is down.
    """

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._client = client

    async def resolve(self, ip_address: Optional[str]) -> GeolocationResult:
        if not ip_address or ip_address == "unknown":
            return unresolved()

        url = f"{self.settings.geolocation_api_url.rstrip('/')}/{ip_address}/json/"
        headers = {"User-Agent": self.settings.geolocation_user_agent}
        try:
            if self._client is not None:
                resp = await self._client.get(url, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.settings.geolocation_timeout_seconds) as client:
                    resp = await client.get(url, headers=headers)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Geolocation lookup failed for %s: %s", ip_address, exc)
            return unresolved("lookup_failed", str(exc))

        if not isinstance(data, dict):
            logger.warning("Geolocation provider returned %s for %s", type(data).__name__, ip_address)
            return unresolved("lookup_failed", "unexpected payload")

        if data.get("error"):
            reason = _text(data.get("reason"))
            logger.warning("Geolocation provider error for %s: %s", ip_address, reason)
            return unresolved("provider_error", reason)

        country_code = _text(data.get("country_code"))
        result = GeolocationResult(
            latitude=_coordinate(data.get("latitude")),
            longitude=_coordinate(data.get("longitude")),
            city=_text(data.get("city")),
            country=_text(data.get("country_name")),
            country_code=country_code,
            region=_text(data.get("region")),
            is_high_risk=is_high_risk(country_code),
        )
        logger.info("Resolved %s to %s (high_risk=%s)", ip_address, result.location_label, result.is_high_risk)
        return result
