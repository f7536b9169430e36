"""Login attempt schema - append-only record of every login try."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from loginshield.core.types import AuthMethod, FailureReason, PatternType, Severity
from loginshield.data.schemas.common import Location, Record, utc_now


class SuspiciousReason(BaseModel):
    reason: str
    severity: Severity = Severity.MEDIUM
    detected_at: datetime = Field(default_factory=utc_now)


class RiskFactor(BaseModel):
    """One additive contribution to an attempt's risk score."""
    factor: str
    score: int
    description: str


class AttemptHeaders(BaseModel):
    user_agent: Optional[str] = None
    accept_language: Optional[str] = None
    referer: Optional[str] = None


class LoginAttempt(Record):
    """A single login attempt.

    Scored once before insertion. Afterwards only the review fields, the
    suspicion flag and pattern membership change.
    """
    user_id: Optional[str] = Field(default=None, description="Null when the user was not resolved")
    email: str = Field(..., description="Login email, lower-cased")
    success: bool
    failure_reason: Optional[FailureReason] = None

    device_fingerprint: Optional[str] = None
    device_info: Dict[str, Any] = Field(default_factory=dict)
    location: Location = Field(default_factory=Location)
    auth_method: AuthMethod = AuthMethod.PASSWORD

    is_suspicious: bool = False
    suspicious_reasons: List[SuspiciousReason] = Field(default_factory=list)
    risk_score: int = Field(default=0, ge=0, le=100)
    risk_factors: List[RiskFactor] = Field(default_factory=list)

    session_id: Optional[str] = None
    token_issued: bool = False
    request_headers: AttemptHeaders = Field(default_factory=AttemptHeaders)
    attempt_duration_ms: Optional[float] = Field(default=None, ge=0)

    is_part_of_pattern: bool = False
    pattern_type: Optional[PatternType] = None

    reviewed: bool = False
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None

    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, v: str) -> str:
        return v.strip().lower()

    model_config = {
        "json_schema_extra": {
            "example": {
                "user_id": "u_123",
                "email": "dispatcher@example.com",
                "success": False,
                "failure_reason": "geo_restriction",
                "device_fingerprint": "9f2c...",
                "location": {"ip": "203.0.113.7", "country": "RU"},
                "risk_score": 45,
                "risk_factors": [
                    {"factor": "failed_attempt", "score": 20, "description": "Login attempt failed"},
                    {"factor": "high_risk_failure", "score": 25, "description": "Failure reason: geo_restriction"},
                ],
            }
        }
    }
