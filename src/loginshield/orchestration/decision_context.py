"""Decision Context - what goes into and comes out of a login evaluation.

LoginRequest is the input handed over by the HTTP login handler.
LoginDecision is the only output. Inside the pipeline a run ends either
with a decision or with an EngineFault; PipelineResult carries exactly
one of the two, and a fault always resolves to the fallback decision.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from loginshield.agents.fingerprint.schema import DriftReport
from loginshield.agents.geo_rules.schema import GeoEvaluation
from loginshield.core.types import AuthMethod, ChallengeType, DecisionReason, DecisionStatus
from loginshield.data.schemas.common import Location, UserContext, utc_now
from loginshield.data.schemas.fingerprint import ClientAttributes, FingerprintRecord, RequestMetadata
from loginshield.data.schemas.trusted_device import TrustedDevice

UNKNOWN = "Unknown"


class LoginRequest(BaseModel):
    """A login to evaluate. Credentials are already checked by the caller."""
    request: RequestMetadata
    client: ClientAttributes = Field(default_factory=ClientAttributes)
    user: UserContext
    two_factor_verified: bool = Field(default=False, description="Caller already verified a second factor")
    location: Optional[Location] = Field(default=None, description="Explicit location, skips derivation")
    auth_method: AuthMethod = AuthMethod.PASSWORD
    session_id: Optional[str] = None


def resolve_location(login: LoginRequest, record: Optional[FingerprintRecord] = None) -> Location:
    """Location of the request.

    An explicit location wins. Otherwise the country comes from the
    cf-ipcountry header, then the client hints; unknown names become
    "Unknown".
    """
    if login.location is not None:
        if login.location.ip is None and login.request.ip:
            return login.location.model_copy(update={"ip": login.request.ip})
        return login.location

    client = login.client
    return Location(
        ip=login.request.ip,
        country=login.request.header("cf-ipcountry") or client.country or UNKNOWN,
        region=client.region or UNKNOWN,
        city=client.city or UNKNOWN,
        latitude=client.latitude,
        longitude=client.longitude,
        timezone=client.timezone or (record.timezone if record is not None else None),
    )


def fallback_location(login: LoginRequest) -> Location:
    return Location(ip=login.request.ip, country=UNKNOWN, region=UNKNOWN, city=UNKNOWN)


class LoginDecision(BaseModel):
    """Outcome of a login evaluation.

    ``allowed`` False is a hard denial. The pending statuses are allowed
    but the caller must collect the named proof before issuing a session.
    """
    status: DecisionStatus
    allowed: bool
    reason: Optional[DecisionReason] = None
    message: Optional[str] = None

    requires_2fa: bool = False
    requires_verification: bool = False
    requires_challenge: bool = False
    challenge_type: Optional[ChallengeType] = None

    device: Optional[TrustedDevice] = None
    trust_score: Optional[int] = None
    location: Optional[Location] = None
    fingerprint: Optional[FingerprintRecord] = None
    geo_evaluation: Optional[GeoEvaluation] = None
    drift: Optional[DriftReport] = None

    security_checks_failed: bool = False
    fallback_mode: bool = False
    error: Optional[str] = None
    decided_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def denied(cls, reason: DecisionReason, message: str, **context) -> "LoginDecision":
        return cls(status=DecisionStatus.DENIED, allowed=False, reason=reason, message=message, **context)

    @classmethod
    def pending_verification(cls, message: str, **context) -> "LoginDecision":
        return cls(
            status=DecisionStatus.PENDING_VERIFICATION,
            allowed=True,
            reason=DecisionReason.DEVICE_CHANGED,
            message=message,
            requires_verification=True,
            **context,
        )

    @classmethod
    def pending_2fa(cls, message: str, **context) -> "LoginDecision":
        return cls(
            status=DecisionStatus.PENDING_2FA,
            allowed=True,
            reason=DecisionReason.GEO_REQUIRES_2FA,
            message=message,
            requires_2fa=True,
            **context,
        )

    @classmethod
    def pending_challenge(cls, challenge_type: Optional[ChallengeType], message: str, **context) -> "LoginDecision":
        return cls(
            status=DecisionStatus.PENDING_CHALLENGE,
            allowed=True,
            reason=DecisionReason.GEO_CHALLENGE,
            message=message,
            requires_challenge=True,
            challenge_type=challenge_type,
            **context,
        )

    @classmethod
    def granted(cls, **context) -> "LoginDecision":
        return cls(status=DecisionStatus.ALLOWED, allowed=True, **context)

    @classmethod
    def fallback(cls, fault: "EngineFault") -> "LoginDecision":
        """Fail-open decision for an engine fault."""
        return cls(
            status=DecisionStatus.ALLOWED,
            allowed=True,
            reason=DecisionReason.SECURITY_CHECKS_FAILED,
            message="Security checks unavailable; login allowed in fallback mode",
            security_checks_failed=True,
            fallback_mode=True,
            error=fault.message,
        )


@dataclass(frozen=True)
class EngineFault:
    """An infrastructure failure inside the pipeline."""
    stage: str
    error_type: str
    message: str

    @classmethod
    def from_exception(cls, stage: str, error: BaseException) -> "EngineFault":
        return cls(stage=stage, error_type=type(error).__name__, message=str(error))


@dataclass(frozen=True)
class PipelineResult:
    """A decision or a fault, never both."""
    decision: Optional[LoginDecision] = None
    fault: Optional[EngineFault] = None

    def __post_init__(self):
        if (self.decision is None) == (self.fault is None):
            raise ValueError("PipelineResult needs exactly one of decision or fault")

    @property
    def is_fault(self) -> bool:
        return self.fault is not None

    def resolve(self) -> LoginDecision:
        """The decision, or the fallback decision for a fault."""
        if self.fault is not None:
            return LoginDecision.fallback(self.fault)
        return self.decision
