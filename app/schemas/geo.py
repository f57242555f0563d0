from typing import Optional
from pydantic import Field

from app.core.errors import Degraded
from app.schemas.base import CamelModel


class GeolocationIn(CamelModel):
    ip_address: Optional[str] = None


class GeolocationResult(CamelModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    city: Optional[str] = None
    country: Optional[str] = None
    country_code: Optional[str] = None
    region: Optional[str] = None
    is_high_risk: bool = False
    degraded: Optional[Degraded] = Field(default=None, exclude=True)

    @property
    def location_label(self) -> str:
        return f"{self.city or 'Unknown'}, {self.country or self.country_code or 'Unknown'}"


class GeofenceCheckIn(CamelModel):
    user_id: Optional[str] = None
    country_code: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None


class GeofenceCheckOut(CamelModel):
    allowed: bool
    reason: Optional[str] = None
    rule_matched: Optional[str] = None
