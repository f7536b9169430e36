"""Geo-Rule Evaluator Output Schema."""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from loginshield.core.types import ChallengeType, RuleKind


class MatchedRule(BaseModel):
    id: str
    name: str
    kind: RuleKind
    priority: int


class GeoEvaluation(BaseModel):
    """Folded effect of every access rule that matched a login.

    A deny stops evaluation, so ``matched_rules`` ends with the deny rule
    when ``allowed`` is False. Otherwise it holds every matching rule in
    evaluation order.
    """

    allowed: bool = Field(default=True)
    requires_2fa: bool = Field(default=False)
    should_alert: bool = Field(default=False)
    should_challenge: bool = Field(default=False)
    explicitly_allowed: bool = Field(default=False, description="An allow rule matched")
    challenge_type: Optional[ChallengeType] = None
    deny_reason: Optional[str] = None
    matched_rules: List[MatchedRule] = Field(default_factory=list)
    messages: Dict[str, str] = Field(
        default_factory=dict,
        description="Custom message per rule kind, from the highest-priority rule of that kind",
    )
    alert_emails: List[str] = Field(default_factory=list)
    alert_webhooks: List[str] = Field(default_factory=list)

    def message_for(self, kind: RuleKind) -> Optional[str]:
        return self.messages.get(kind.value)

    @property
    def custom_message(self) -> Optional[str]:
        """Message of the highest-priority matching rule that carries one."""
        for rule in self.matched_rules:
            message = self.messages.get(rule.kind.value)
            if message is not None:
                return message
        return None

    model_config = {
        "json_schema_extra": {
            "example": {
                "allowed": True,
                "requires_2fa": True,
                "should_alert": True,
                "should_challenge": False,
                "matched_rules": [
                    {"id": "r1", "name": "2FA outside US", "kind": "require_2fa", "priority": 50},
                    {"id": "r2", "name": "Alert on EU logins", "kind": "alert", "priority": 10},
                ],
                "messages": {"require_2fa": "Please confirm with your authenticator"},
            }
        }
    }
