"""Core enums shared by every component."""

from loginshield.core.types import (
    AnomalyType,
    AuthMethod,
    ChallengeType,
    DecisionReason,
    DecisionStatus,
    FailureReason,
    LoginMethod,
    PatternType,
    RevokeReason,
    RuleKind,
    RuleScope,
    SessionSuspicion,
    Severity,
    TrustLevel,
    VerificationMethod,
)

__all__ = [
    "AnomalyType",
    "AuthMethod",
    "ChallengeType",
    "DecisionReason",
    "DecisionStatus",
    "FailureReason",
    "LoginMethod",
    "PatternType",
    "RevokeReason",
    "RuleKind",
    "RuleScope",
    "SessionSuspicion",
    "Severity",
    "TrustLevel",
    "VerificationMethod",
]
