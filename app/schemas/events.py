from typing import Any, Optional
from pydantic import Field

from app.schemas.base import CamelModel


class SecurityEventIn(CamelModel):
    user_id: Optional[str] = Field(default=None, max_length=64)
    event_type: str = Field(..., min_length=1, max_length=64)
    event_details: Optional[dict[str, Any]] = None
    success: bool


class SecurityEventOut(CamelModel):
    success: bool = True
    alerts_sent: int = 0


class SecurityAlert(CamelModel):
    email: str
    user_name: str
    alert_type: str
    alert_details: str
    timestamp: str
    ip_address: str
    location: Optional[str] = None
