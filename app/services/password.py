import datetime as dt
import math
from typing import Optional

from app.core.clock import as_utc
from app.schemas.account import PasswordExpiryOut


def password_expiry(
    password_changed_at: Optional[dt.datetime], now: dt.datetime, max_age_days: int = 90
) -> PasswordExpiryOut:
    if password_changed_at is None:
        return PasswordExpiryOut(is_expired=False, days_until_expiry=None)
    expires_at = as_utc(password_changed_at) + dt.timedelta(days=max_age_days)
    remaining = (expires_at - now).total_seconds() / 86400
    return PasswordExpiryOut(is_expired=now > expires_at, days_until_expiry=math.ceil(remaining))
