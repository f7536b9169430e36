"""Security policy - every tunable threshold of the engine in one model.

Thresholds are injected into each component instead of being read from
module constants, so tests and deployments can run with varied policies.
The policy is loaded from YAML and validated with pydantic; any section
left out of the file keeps its default.
"""

from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from loginshield.common.constants import (
    DeviceConstants,
    PatternConstants,
    RetentionConstants,
    RiskConstants,
    SessionConstants,
)
from loginshield.common.exceptions import ConfigurationError


class PolicyMetadata(BaseModel):
    """Policy file provenance."""
    version: str = Field(default="1.0.0")
    description: str = Field(default="Default LoginShield security policy")


class DriftPolicy(BaseModel):
    """Cutoffs for fingerprint drift severity.

    Severity is "high" when the number of changed major fields is strictly
    greater than ``high_major_changes``, "medium" when strictly greater than
    ``medium_major_changes``, otherwise "low".
    """
    high_major_changes: int = Field(default=DeviceConstants.HIGH_DRIFT_MAJOR_CHANGES, ge=0)
    medium_major_changes: int = Field(default=DeviceConstants.MEDIUM_DRIFT_MAJOR_CHANGES, ge=0)


class TrustScorePolicy(BaseModel):
    """Additive weights of the device trust score."""
    verified_bonus: int = Field(default=DeviceConstants.VERIFIED_BONUS, ge=0)
    points_per_trusted_day: float = Field(default=DeviceConstants.POINTS_PER_TRUSTED_DAY, ge=0)
    max_age_points: int = Field(default=DeviceConstants.MAX_AGE_POINTS, ge=0)
    points_per_login: float = Field(default=DeviceConstants.POINTS_PER_LOGIN, ge=0)
    max_login_points: int = Field(default=DeviceConstants.MAX_LOGIN_POINTS, ge=0)
    failed_attempt_penalty: int = Field(default=DeviceConstants.FAILED_ATTEMPT_PENALTY, ge=0)
    fingerprint_match_bonus: int = Field(default=DeviceConstants.FINGERPRINT_MATCH_BONUS, ge=0)


class DevicePolicy(BaseModel):
    """Trusted-device state transition thresholds."""
    trusted_login_threshold: int = Field(default=DeviceConstants.TRUSTED_LOGIN_THRESHOLD, ge=0)
    suspicious_failure_threshold: int = Field(default=DeviceConstants.SUSPICIOUS_FAILURE_THRESHOLD, ge=1)
    high_severity_failure_threshold: int = Field(
        default=DeviceConstants.HIGH_SEVERITY_FAILURE_THRESHOLD, ge=1
    )
    block_failure_threshold: int = Field(default=DeviceConstants.BLOCK_FAILURE_THRESHOLD, ge=1)
    significant_change_count: int = Field(default=DeviceConstants.SIGNIFICANT_CHANGE_COUNT, ge=0)
    significant_change_penalty: int = Field(default=DeviceConstants.SIGNIFICANT_CHANGE_PENALTY, ge=0)
    verify_trust_bonus: int = Field(default=DeviceConstants.VERIFY_TRUST_BONUS, ge=0)
    default_trust_score: int = Field(default=DeviceConstants.DEFAULT_TRUST_SCORE, ge=0, le=100)


class BruteForcePolicy(BaseModel):
    """Failed attempts per email inside a trailing window."""
    window_minutes: int = Field(default=PatternConstants.BRUTE_FORCE_WINDOW_MINUTES, gt=0)
    threshold: int = Field(default=PatternConstants.BRUTE_FORCE_THRESHOLD, gt=0)


class CredentialStuffingPolicy(BaseModel):
    """Distinct emails per IP/fingerprint inside a trailing window."""
    window_minutes: int = Field(default=PatternConstants.CREDENTIAL_STUFFING_WINDOW_MINUTES, gt=0)
    threshold: int = Field(default=PatternConstants.CREDENTIAL_STUFFING_THRESHOLD, gt=0)


class RiskScoringPolicy(BaseModel):
    """Additive weights of the per-attempt risk score."""
    failed_attempt: int = Field(default=RiskConstants.FAILED_ATTEMPT, ge=0)
    marked_suspicious: int = Field(default=RiskConstants.MARKED_SUSPICIOUS, ge=0)
    unknown_device: int = Field(default=RiskConstants.UNKNOWN_DEVICE, ge=0)
    high_risk_failure: int = Field(default=RiskConstants.HIGH_RISK_FAILURE, ge=0)
    attack_pattern: int = Field(default=RiskConstants.ATTACK_PATTERN, ge=0)
    high_risk_failure_reasons: List[str] = Field(
        default_factory=lambda: [
            "suspicious_activity",
            "geo_restriction",
            "device_not_trusted",
        ]
    )


class SessionPolicy(BaseModel):
    """Session anomaly thresholds."""
    max_distinct_ips: int = Field(default=SessionConstants.MAX_DISTINCT_IPS, ge=0)
    impossible_travel_hours: float = Field(default=SessionConstants.IMPOSSIBLE_TRAVEL_HOURS, gt=0)
    max_concurrent_sessions: int = Field(default=SessionConstants.MAX_CONCURRENT_SESSIONS, ge=0)
    default_session_hours: int = Field(default=SessionConstants.DEFAULT_SESSION_HOURS, gt=0)


class RetentionPolicy(BaseModel):
    """Rolling deletion windows used by the maintenance job."""
    login_attempt_days: int = Field(default=RetentionConstants.LOGIN_ATTEMPT_DAYS, gt=0)
    dormant_device_days: int = Field(default=RetentionConstants.DORMANT_DEVICE_DAYS, gt=0)
    session_days: int = Field(default=RetentionConstants.SESSION_DAYS, gt=0)


class SecurityPolicy(BaseModel):
    """Complete engine policy."""
    metadata: PolicyMetadata = Field(default_factory=PolicyMetadata)
    drift: DriftPolicy = Field(default_factory=DriftPolicy)
    trust_score: TrustScorePolicy = Field(default_factory=TrustScorePolicy)
    device: DevicePolicy = Field(default_factory=DevicePolicy)
    brute_force: BruteForcePolicy = Field(default_factory=BruteForcePolicy)
    credential_stuffing: CredentialStuffingPolicy = Field(default_factory=CredentialStuffingPolicy)
    risk_scoring: RiskScoringPolicy = Field(default_factory=RiskScoringPolicy)
    sessions: SessionPolicy = Field(default_factory=SessionPolicy)
    retention: RetentionPolicy = Field(default_factory=RetentionPolicy)

    @property
    def version(self) -> str:
        return self.metadata.version


def load_security_policy(policy_file: Optional[Union[str, Path]] = None) -> SecurityPolicy:
    """Load and validate a security policy from YAML.

    Args:
        policy_file: Path to a policy YAML file. Defaults are used when None.

    Returns:
        Validated SecurityPolicy

    Raises:
        FileNotFoundError: If the given file does not exist
        ConfigurationError: If the file is not valid YAML or fails validation
    """
    if policy_file is None:
        return SecurityPolicy()

    path = Path(policy_file)
    if not path.exists():
        raise FileNotFoundError(f"Policy file not found: {path}")

    try:
        with open(path, "r") as f:
            raw_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Policy file is not valid YAML: {path}",
            details={"error": str(e)},
        ) from e

    try:
        return SecurityPolicy.model_validate(raw_config)
    except PydanticValidationError as e:
        raise ConfigurationError(
            f"Policy file failed validation: {path}",
            details={"errors": e.errors(include_url=False)},
        ) from e
