from typing import List, Literal, Optional
from pydantic import Field

from app.schemas.base import CamelModel


class TwoFactorBreakdown(CamelModel):
    score: int = 0
    max_score: int = 30
    enabled: bool = False


class PasswordAgeBreakdown(CamelModel):
    score: int = 0
    max_score: int = 25
    days_old: Optional[int] = None


class TrustedDevicesBreakdown(CamelModel):
    score: int = 0
    max_score: int = 30
    trusted_count: int = 0
    total_count: int = 0


class ActiveSessionsBreakdown(CamelModel):
    score: int = 0
    max_score: int = 15
    session_count: int = 0


class ScoreBreakdown(CamelModel):
    two_factor: TwoFactorBreakdown = Field(default_factory=TwoFactorBreakdown)
    password_age: PasswordAgeBreakdown = Field(default_factory=PasswordAgeBreakdown)
    trusted_devices: TrustedDevicesBreakdown = Field(default_factory=TrustedDevicesBreakdown)
    active_sessions: ActiveSessionsBreakdown = Field(default_factory=ActiveSessionsBreakdown)


class SecurityScore(CamelModel):
    total_score: int = 0
    max_score: int = 100
    breakdown: ScoreBreakdown = Field(default_factory=ScoreBreakdown)
    risk_level: Literal["low", "medium", "high"] = "high"
    recommendations: List[str] = Field(default_factory=list)
