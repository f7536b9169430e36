"""Attempt risk scorer - additive, explainable score per login attempt."""

from typing import List, Optional

from loginshield.agents.risk.schema import RiskAssessment
from loginshield.common.config.policy import RiskScoringPolicy
from loginshield.common.constants import RiskConstants
from loginshield.data.schemas.login_attempt import LoginAttempt, RiskFactor


class AttemptRiskScorer:
    """Attempt Risk Scorer.

    Responsibilities:
    - Score an attempt from its own fields
    - Name every contribution as a RiskFactor

    Constraints:
    - Pure, no store access
    - Score clamped to [0, 100]
    """

    def __init__(self, policy: Optional[RiskScoringPolicy] = None):
        self._policy = policy or RiskScoringPolicy()

    def score(self, attempt: LoginAttempt) -> RiskAssessment:
        policy = self._policy
        factors: List[RiskFactor] = []

        if not attempt.success:
            factors.append(
                RiskFactor(factor="failed_attempt", score=policy.failed_attempt, description="Failed login attempt")
            )

        if attempt.is_suspicious:
            factors.append(
                RiskFactor(
                    factor="suspicious_activity",
                    score=policy.marked_suspicious,
                    description="Attempt flagged as suspicious",
                )
            )

        if not attempt.device_fingerprint:
            factors.append(
                RiskFactor(factor="unknown_device", score=policy.unknown_device, description="No device fingerprint")
            )

        reason = attempt.failure_reason.value if attempt.failure_reason is not None else None
        if reason in policy.high_risk_failure_reasons:
            factors.append(
                RiskFactor(
                    factor="high_risk_failure",
                    score=policy.high_risk_failure,
                    description=f"High-risk failure reason: {reason}",
                )
            )

        if attempt.is_part_of_pattern:
            pattern = attempt.pattern_type.value if attempt.pattern_type is not None else "unknown"
            factors.append(
                RiskFactor(
                    factor="attack_pattern",
                    score=policy.attack_pattern,
                    description=f"Part of attack pattern: {pattern}",
                )
            )

        total = sum(f.score for f in factors)
        return RiskAssessment(score=max(0, min(RiskConstants.MAX_SCORE, total)), factors=factors)

    def apply(self, attempt: LoginAttempt) -> LoginAttempt:
        """Copy of the attempt carrying its score and factors."""
        assessment = self.score(attempt)
        return attempt.model_copy(
            update={"risk_score": assessment.score, "risk_factors": assessment.factors}
        )
