"""Trusted device schema - one record per (user, fingerprint)."""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from loginshield.common.constants import DeviceConstants
from loginshield.core.types import TrustLevel, VerificationMethod
from loginshield.data.schemas.common import Location, Record, utc_now
from loginshield.data.schemas.fingerprint import DeviceSnapshot
from loginshield.data.schemas.login_attempt import SuspiciousReason


class FingerprintChange(BaseModel):
    """One field that differs between two fingerprints."""
    field: str
    old_value: Any = None
    new_value: Any = None
    is_major: bool = False


class FingerprintHistoryEntry(BaseModel):
    fingerprint: str
    changed_at: datetime = Field(default_factory=utc_now)
    changes: List[FingerprintChange] = Field(default_factory=list)


class DeviceMetadata(BaseModel):
    screen_resolution: Optional[str] = None
    timezone: Optional[str] = None
    language: Optional[str] = None
    hardware_concurrency: Optional[int] = None
    device_memory: Optional[float] = None
    touch_support: bool = False


class TrustedDevice(Record):
    """Device a user has logged in from.

    Trust ladder: unknown -> recognized -> trusted after enough logins;
    verified only through explicit verification. Failures push the device
    to suspicious and eventually blocked.
    """
    user_id: str
    fingerprint: str
    device_info: DeviceSnapshot = Field(default_factory=DeviceSnapshot)
    device_name: Optional[str] = None

    trust_level: TrustLevel = TrustLevel.RECOGNIZED
    trust_score: int = Field(default=DeviceConstants.DEFAULT_TRUST_SCORE, ge=0, le=100)
    last_trust_score_update: Optional[datetime] = None

    is_verified: bool = False
    verification_method: Optional[VerificationMethod] = None
    verified_at: Optional[datetime] = None

    last_location: Optional[Location] = None
    first_seen: datetime = Field(default_factory=utc_now)
    last_seen: datetime = Field(default_factory=utc_now)
    login_count: int = Field(default=0, ge=0)
    failed_attempts: int = Field(default=0, ge=0)

    is_blocked: bool = False
    blocked_at: Optional[datetime] = None
    blocked_reason: Optional[str] = None

    is_suspicious: bool = False
    suspicious_reasons: List[SuspiciousReason] = Field(default_factory=list)

    remember_device: bool = False
    remember_until: Optional[datetime] = None

    fingerprint_history: List[FingerprintHistoryEntry] = Field(default_factory=list)
    metadata: DeviceMetadata = Field(default_factory=DeviceMetadata)

    def trusted_since(self) -> datetime:
        """Start of the trust period used by the days-trusted bonus."""
        return self.verified_at or self.first_seen
