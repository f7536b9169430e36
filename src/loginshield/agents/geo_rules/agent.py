"""Geo-Rule Evaluator - applies admin access rules to a login location.

Rules are evaluated in priority order. A deny stops evaluation; every
other effect accumulates into one GeoEvaluation.

This evaluator decides nothing about devices or credentials.
"""

import logging
from datetime import datetime
from typing import Optional

from loginshield.agents.geo_rules.matching import matches_location, matches_time_window
from loginshield.agents.geo_rules.schema import GeoEvaluation, MatchedRule
from loginshield.common.constants import GeoConstants
from loginshield.common.exceptions import RuleEvaluationError
from loginshield.core.types import RuleKind
from loginshield.data.schemas.access_rule import AccessRule
from loginshield.data.schemas.common import Location, utc_now
from loginshield.repositories.access_rules import AccessRuleRepository

logger = logging.getLogger(__name__)


class GeoRuleEvaluator:
    """Geo-Rule Evaluator - location and time based access control.

    Responsibilities:
    - Load active rules in evaluation order
    - Check scope, location and time window of each rule
    - Fold matching effects into a GeoEvaluation
    - Count rule triggers

    Constraints:
    - Deny short-circuits; later rules are neither matched nor counted
    - Rules without location conditions never match
    - Store and rule evaluation errors propagate to the caller
    """

    def __init__(self, rules: AccessRuleRepository):
        """Initialize Geo-Rule Evaluator.

        Args:
            rules: Access rule repository
        """
        self._rules = rules

    def matches(
        self,
        rule: AccessRule,
        user_id: Optional[str],
        role: Optional[str],
        location: Location,
        now: datetime,
    ) -> bool:
        """Scope, location and time window check for one rule."""
        if not rule.applies_to(user_id, role):
            return False
        if rule.conditions.is_empty():
            return False
        try:
            if not matches_location(rule.conditions, location):
                return False
            return matches_time_window(rule.time_window, now)
        except (ValueError, KeyError) as e:
            raise RuleEvaluationError(
                f"Access rule {rule.name!r} could not be evaluated",
                rule_id=rule.id,
                details={"error": str(e)},
            ) from e

    async def evaluate(
        self,
        user_id: Optional[str],
        role: Optional[str],
        location: Location,
        now: Optional[datetime] = None,
    ) -> GeoEvaluation:
        """Evaluate every active rule against a login.

        Args:
            user_id: Authenticated user
            role: User role, for role-scoped rules
            location: Resolved request location
            now: Evaluation time, defaults to the current UTC time

        Returns:
            GeoEvaluation with the folded effects
        """
        now = now or utc_now()
        result = GeoEvaluation()

        for rule in await self._rules.get_active_rules():
            if not self.matches(rule, user_id, role, location, now):
                continue

            kind = rule.rule_kind
            result.matched_rules.append(
                MatchedRule(id=rule.id, name=rule.name, kind=kind, priority=rule.priority)
            )
            if rule.custom_message:
                # Rules arrive highest priority first, so the first message sticks
                result.messages.setdefault(kind.value, rule.custom_message)

            if kind == RuleKind.DENY:
                result.allowed = False
                result.deny_reason = (
                    rule.deny_message or rule.custom_message or GeoConstants.DEFAULT_DENY_MESSAGE
                )
                await self._rules.record_trigger(rule.id, allowed=False, now=now)
                logger.info(
                    "Login denied by access rule",
                    extra={"rule_id": rule.id, "user_id": user_id, "country": location.country},
                )
                return result

            if kind == RuleKind.REQUIRE_2FA:
                result.requires_2fa = True
            elif kind == RuleKind.ALERT:
                result.should_alert = True
                for email in rule.alert_emails:
                    if email not in result.alert_emails:
                        result.alert_emails.append(email)
                if rule.alert_webhook_url and rule.alert_webhook_url not in result.alert_webhooks:
                    result.alert_webhooks.append(rule.alert_webhook_url)
            elif kind == RuleKind.CHALLENGE:
                if not result.should_challenge:
                    result.challenge_type = rule.challenge_type
                result.should_challenge = True
            elif kind == RuleKind.ALLOW:
                result.explicitly_allowed = True

            await self._rules.record_trigger(rule.id, allowed=True, now=now)

        if result.matched_rules:
            logger.debug(
                "Access rules matched",
                extra={"user_id": user_id, "matched": [r.id for r in result.matched_rules]},
            )
        return result
