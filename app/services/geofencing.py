import datetime as dt
import enum
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from app.core.clock import utcnow
from app.core.errors import Degraded
from app.models.geofencing import GeofencingException, GeofencingRule
from app.repositories.geofencing import GeofencingRepository
from app.schemas.geo import GeofenceCheckOut
from app.services.alerts import AlertNotifier

logger = logging.getLogger(__name__)


class GeofenceBranch(str, enum.Enum):
    LOCATION_UNKNOWN = "location_unknown"
    EXCEPTION_MATCH = "exception_match"
    RULES_UNAVAILABLE = "rules_unavailable"
    NO_RULES = "no_rules"
    RULE_BLOCK = "rule_block"
    RULE_ALLOW = "rule_allow"
    ALLOW_LIST_DEFAULT_DENY = "allow_list_default_deny"
    DEFAULT_PERMIT = "default_permit"
    EVALUATION_ERROR = "evaluation_error"


@dataclass(frozen=True)
class GeofenceDecision:
    allowed: bool
    branch: GeofenceBranch
    reason: Optional[str] = None
    rule_matched: Optional[str] = None
    degraded: Optional[Degraded] = None

    def to_response(self) -> GeofenceCheckOut:
        return GeofenceCheckOut(allowed=self.allowed, reason=self.reason, rule_matched=self.rule_matched)


def _codes(values: Optional[Iterable[str]]) -> set[str]:
    return {v.upper() for v in values or ()}


def evaluation_error(cause: str) -> GeofenceDecision:
    return GeofenceDecision(
        allowed=True,
        branch=GeofenceBranch.EVALUATION_ERROR,
        reason="Error checking geofencing rules",
        degraded=Degraded("evaluation_error", cause),
    )


def exception_covers(exceptions: Iterable[GeofencingException], country_code: str) -> bool:
    return any(country_code in _codes(exc.country_codes) for exc in exceptions)


def match_rules(country_code: str, rules: Sequence[GeofencingRule], label: str) -> GeofenceDecision:
    """
    Apply ordered rules to a known country.

    ``rules`` must already be newest-first; the first rule listing the country
    decides. With no match, the presence of any allow rule turns the active
    set into an allow-list and the login is denied.
    """
    if not rules:
        return GeofenceDecision(allowed=True, branch=GeofenceBranch.NO_RULES)

    for rule in rules:
        if country_code not in _codes(rule.country_codes):
            continue
        if rule.rule_type == "block":
            return GeofenceDecision(
                allowed=False,
                branch=GeofenceBranch.RULE_BLOCK,
                reason=f"Access from {label} is not permitted",
                rule_matched=rule.rule_name,
            )
        if rule.rule_type == "allow":
            return GeofenceDecision(
                allowed=True, branch=GeofenceBranch.RULE_ALLOW, rule_matched=rule.rule_name
            )

    if any(rule.rule_type == "allow" for rule in rules):
        return GeofenceDecision(
            allowed=False,
            branch=GeofenceBranch.ALLOW_LIST_DEFAULT_DENY,
            reason=f"Access from {label} is not in the allowed regions",
        )
    return GeofenceDecision(allowed=True, branch=GeofenceBranch.DEFAULT_PERMIT)


class GeofencingEvaluator:
    def __init__(
        self,
        repo: GeofencingRepository,
        notifier: AlertNotifier,
        clock: Callable[[], dt.datetime] = utcnow,
    ):
        self.repo = repo
        self.notifier = notifier
        self.clock = clock

    async def evaluate(
        self,
        user_id: Optional[str],
        country_code: Optional[str],
        city: Optional[str] = None,
        country: Optional[str] = None,
    ) -> GeofenceDecision:
        """Decide whether a login from the given location may proceed. Never raises."""
        try:
            decision = await self._evaluate(user_id, country_code, city, country)
        except Exception as exc:
            logger.exception("Geofencing evaluation failed for user %s; allowing", user_id)
            return evaluation_error(str(exc))
        logger.info(
            "Geofencing user=%s country=%s branch=%s allowed=%s",
            user_id, country_code, decision.branch.value, decision.allowed,
        )
        return decision

    async def _evaluate(
        self, user_id: Optional[str], country_code: Optional[str], city: Optional[str], country: Optional[str]
    ) -> GeofenceDecision:
        if not country_code:
            return GeofenceDecision(
                allowed=True,
                branch=GeofenceBranch.LOCATION_UNKNOWN,
                reason="Location could not be determined",
            )
        country_code = country_code.upper()

        exceptions = []
        if user_id:
            try:
                exceptions = await self.repo.active_exceptions(user_id, self.clock())
            except SQLAlchemyError:
                logger.exception("Could not load geofencing exceptions for user %s", user_id)
        if exception_covers(exceptions, country_code):
            return GeofenceDecision(
                allowed=True,
                branch=GeofenceBranch.EXCEPTION_MATCH,
                reason="User has a geofencing exception",
            )

        try:
            rules = await self.repo.active_rules()
        except SQLAlchemyError as exc:
            logger.error("Could not load geofencing rules: %s", exc)
            return GeofenceDecision(
                allowed=True,
                branch=GeofenceBranch.RULES_UNAVAILABLE,
                reason="Could not verify geofencing rules",
                degraded=Degraded("rules_unavailable", str(exc)),
            )

        decision = match_rules(country_code, rules, country or country_code)
        if not decision.allowed and user_id:
            await self._alert(user_id, decision, country_code, city, country)
        return decision

    async def _alert(
        self,
        user_id: str,
        decision: GeofenceDecision,
        country_code: str,
        city: Optional[str],
        country: Optional[str],
    ) -> None:
        where = f"{city or 'unknown city'}, {country or country_code}"
        if decision.branch is GeofenceBranch.RULE_BLOCK:
            alert_type = "Geofencing Violation"
            details = (
                f"Login attempt blocked from {where}. This location is restricted by "
                f"geofencing policy: {decision.rule_matched}."
            )
        else:
            alert_type = "Unusual Login Location"
            details = (
                f"Login attempt from unusual location: {where}. "
                "This location is not in the allowed regions list."
            )
        await self.notifier.notify(
            user_id,
            alert_type,
            details,
            ip_address="Login Attempt",
            location=f"{city or 'Unknown'}, {country or country_code}",
        )
