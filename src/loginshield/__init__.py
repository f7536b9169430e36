"""LoginShield - adaptive login-risk engine."""

__version__ = "0.1.0"
__author__ = "LoginShield Team"

# Core exports
from loginshield.core.types import DecisionReason, DecisionStatus, RuleKind

__all__ = [
    "DecisionReason",
    "DecisionStatus",
    "RuleKind",
]
