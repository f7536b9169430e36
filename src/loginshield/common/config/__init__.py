"""Configuration module - environment settings and security policy."""

from loginshield.common.config.settings import (
    AlertSinkType,
    Config,
    Environment,
    LogLevel,
    get_config,
    reset_config,
)
from loginshield.common.config.policy import (
    BruteForcePolicy,
    CredentialStuffingPolicy,
    DevicePolicy,
    DriftPolicy,
    PolicyMetadata,
    RetentionPolicy,
    RiskScoringPolicy,
    SecurityPolicy,
    SessionPolicy,
    TrustScorePolicy,
    load_security_policy,
)

__all__ = [
    # Settings
    "AlertSinkType",
    "Config",
    "Environment",
    "LogLevel",
    "get_config",
    "reset_config",
    # Policy
    "BruteForcePolicy",
    "CredentialStuffingPolicy",
    "DevicePolicy",
    "DriftPolicy",
    "PolicyMetadata",
    "RetentionPolicy",
    "RiskScoringPolicy",
    "SecurityPolicy",
    "SessionPolicy",
    "TrustScorePolicy",
    "load_security_policy",
]
