"""Risk Agent - module init."""

from loginshield.agents.risk.patterns import PatternDetector
from loginshield.agents.risk.schema import (
    BruteForceResult,
    CredentialStuffingResult,
    RiskAssessment,
)
from loginshield.agents.risk.scorer import AttemptRiskScorer

__all__ = [
    "AttemptRiskScorer",
    "PatternDetector",
    "RiskAssessment",
    "BruteForceResult",
    "CredentialStuffingResult",
]
