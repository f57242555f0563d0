import datetime as dt


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def local_now() -> dt.datetime:
    return dt.datetime.now().astimezone()


def as_utc(value: dt.datetime | None) -> dt.datetime | None:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def format_alert_timestamp(value: dt.datetime) -> str:
    """Long English form used in alert emails, e.g. 'Monday, March 9, 2026 at 3:04:05 AM UTC'."""
    value = value.astimezone(dt.timezone.utc)
    hour = value.hour % 12 or 12
    meridiem = "AM" if value.hour < 12 else "PM"
    return (
        f"{value:%A}, {value:%B} {value.day}, {value.year} at "
        f"{hour}:{value:%M}:{value:%S} {meridiem} UTC"
    )
