"""
Two failure families for the login pipeline.

Fail-open paths (geolocation, geofencing) never raise: they hand back their
normal result carrying a ``Degraded`` marker so callers and tests can see that
the answer is a fallback. Fatal paths raise ``FatalSecurityError`` and surface
as an error response.
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class Degraded:
    reason: str
    cause: str | None = None


class FatalSecurityError(Exception):
    status_code = 500
    public_message = "Internal error"


class AuditLogWriteError(FatalSecurityError):
    public_message = "Failed to log event"
