"""Agent modules for LoginShield."""

from loginshield.agents.fingerprint.agent import FingerprintAgent
from loginshield.agents.geo_rules.agent import GeoRuleEvaluator
from loginshield.agents.risk.patterns import PatternDetector
from loginshield.agents.risk.scorer import AttemptRiskScorer
from loginshield.agents.session.agent import SessionAnomalyDetector

__all__ = [
    "FingerprintAgent",
    "GeoRuleEvaluator",
    "AttemptRiskScorer",
    "PatternDetector",
    "SessionAnomalyDetector",
]
