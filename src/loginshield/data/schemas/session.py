"""Session schema - one record per issued credential."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from loginshield.core.types import LoginMethod, RevokeReason, SessionSuspicion
from loginshield.data.schemas.common import Location, Record, utc_now


class Session(Record):
    """An issued credential. Only the SHA-256 of the token is stored."""
    user_id: str
    token_hash: str = Field(..., min_length=64, max_length=64)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    device_info: Dict[str, Any] = Field(default_factory=dict)
    location: Location = Field(default_factory=Location)
    login_method: LoginMethod = LoginMethod.PASSWORD

    is_active: bool = True
    last_activity: datetime = Field(default_factory=utc_now)
    expires_at: datetime

    revoked_at: Optional[datetime] = None
    revoked_by: Optional[str] = None
    revoke_reason: Optional[RevokeReason] = None

    activity_count: int = Field(default=0, ge=0)
    is_suspicious: bool = False
    suspicious_reasons: List[SessionSuspicion] = Field(default_factory=list)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at <= (now or utc_now())
