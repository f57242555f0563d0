import asyncio
import datetime as dt
import html
import logging
import math

import httpx
from celery import Celery
from celery.schedules import crontab

from app.core.clock import as_utc, utcnow
from app.core.config import get_settings, Settings
from app.core.logging_config import setup_logging
from app.db.session import async_session
from app.repositories.profiles import ProfileRepository

settings = get_settings()
setup_logging(settings.log_level)
logger = logging.getLogger(__name__)

celery = Celery(
    "account_security",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_ignore_result=True,
    beat_schedule={
        "notify-password-expiry": {
            "task": "notify_password_expiry",
            "schedule": crontab(minute=0, hour=9),
        },
    },
)

EXPIRY_NOTICE_THROTTLE = dt.timedelta(hours=24)


def _paragraphs(*lines: str) -> str:
    return "".join(f"<p>{html.escape(line)}</p>" for line in lines)


def render_security_alert(alert: dict) -> str:
    lines = [
        f"Hello {alert.get('userName') or alert.get('email')},",
        f"We detected the following security event on your account: {alert.get('alertType')}.",
        alert.get("alertDetails") or "",
        f"Time: {alert.get('timestamp')}",
        f"IP address: {alert.get('ipAddress')}",
    ]
    if alert.get("location"):
        lines.append(f"Location: {alert['location']}")
    lines.append("If this wasn't you, change your password and review your active sessions immediately.")
    return f"<div><h2>Security Alert</h2>{_paragraphs(*lines)}</div>"


def render_password_changed(user_name: str, timestamp: str, ip_address: str) -> str:
    return "<div><h2>Password Changed</h2>{}</div>".format(_paragraphs(
        f"Hello {user_name},",
        f"The password for your account was changed on {timestamp} from {ip_address}.",
        "If you did not make this change, contact your security team immediately.",
    ))


def render_password_expiry(user_name: str, days_until_expiry: int, max_age_days: int) -> str:
    return "<div><h2>Password Expiration Notice</h2>{}</div>".format(_paragraphs(
        f"Hello {user_name},",
        f"Your password will expire in {days_until_expiry} days.",
        f"For security reasons, passwords must be changed every {max_age_days} days.",
        "Please change your password before it expires to avoid being locked out of your account.",
    ))


def deliver_email(cfg: Settings, to: str, subject: str, body: str, sender: str | None = None) -> bool:
    """POST one message to the Resend-compatible email API. Returns False when not delivered."""
    if not cfg.resend_api_key:
        logger.warning("RESEND_API_KEY not configured; dropping email %r to %s", subject, to)
        return False
    try:
        resp = httpx.post(
            cfg.alert_api_url,
            headers={"Authorization": f"Bearer {cfg.resend_api_key}"},
            json={"from": sender or cfg.alert_from_address, "to": [to], "subject": subject, "html": body},
            timeout=cfg.alert_timeout_seconds,
        )
        resp.raise_for_status()
    except httpx.HTTPError as exc:
        logger.error("Email delivery failed (%r to %s): %s", subject, to, exc)
        return False
    logger.info("Email %r sent to %s", subject, to)
    return True


@celery.task(name="send_security_alert")
def send_security_alert(alert: dict) -> bool:
    return deliver_email(
        get_settings(),
        alert["email"],
        f"Security Alert: {alert['alertType']}",
        render_security_alert(alert),
    )


@celery.task(name="send_password_change_email")
def send_password_change_email(email: str, user_name: str, timestamp: str, ip_address: str) -> bool:
    return deliver_email(
        get_settings(),
        email,
        "Password Changed - Security Notice",
        render_password_changed(user_name, timestamp, ip_address),
    )


async def notify_expiring_passwords(profiles: ProfileRepository, cfg: Settings, now: dt.datetime) -> dict:
    """
    Email every user whose password expires within the warning window and who
    has not been reminded in the last 24 hours.
    """
    changed_before = now - dt.timedelta(days=cfg.password_max_age_days - cfg.password_expiry_warning_days)
    due = await profiles.due_for_expiry_notice(changed_before, now - EXPIRY_NOTICE_THROTTLE)
    sent, failed = 0, 0
    for profile in due:
        if not profile.email:
            continue
        expires_at = as_utc(profile.password_changed_at) + dt.timedelta(days=cfg.password_max_age_days)
        days_left = max(0, math.ceil((expires_at - now).total_seconds() / 86400))
        body = render_password_expiry(profile.full_name or profile.email, days_left, cfg.password_max_age_days)
        if deliver_email(cfg, profile.email, "Password Expiration Notice", body):
            await profiles.mark_expiry_notified(profile.id, now)
            sent += 1
        else:
            failed += 1
    logger.info("Password expiry notices: %d sent, %d failed", sent, failed)
    return {"notificationsSent": sent, "notificationsFailed": failed}


@celery.task(name="notify_password_expiry")
def notify_password_expiry() -> dict:
    async def _run():
        async with async_session() as session:
            return await notify_expiring_passwords(ProfileRepository(session), get_settings(), utcnow())

    return asyncio.run(_run())
