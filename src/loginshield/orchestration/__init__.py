"""Orchestration - the per-login decision pipeline."""

from loginshield.orchestration.decision_context import (
    EngineFault,
    LoginDecision,
    LoginRequest,
    PipelineResult,
)
from loginshield.orchestration.decision_flow import (
    LoginSecurityOrchestrator,
    LoginShieldEngine,
    build_store,
    create_engine,
)

__all__ = [
    "LoginRequest",
    "LoginDecision",
    "EngineFault",
    "PipelineResult",
    "LoginSecurityOrchestrator",
    "LoginShieldEngine",
    "build_store",
    "create_engine",
]
