"""Security alert schema - one record per alert raised by the engine."""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from loginshield.core.types import Severity
from loginshield.data.schemas.common import Location, utc_now


class SecurityAlert(BaseModel):
    """A security alert.

    Immutable once written. Hash chain fields are filled by sinks that
    keep one.
    """
    alert_id: str = Field(
        default_factory=lambda: f"alr_{uuid4().hex[:12]}",
        description="Unique alert identifier",
    )
    timestamp: datetime = Field(default_factory=utc_now)
    alert_type: str = Field(..., description="What raised the alert, e.g. geo_rule")
    severity: Severity = Severity.MEDIUM
    message: str

    user_id: Optional[str] = None
    email: Optional[str] = None
    device_id: Optional[str] = None
    location: Optional[Location] = None
    matched_rules: List[Dict[str, Any]] = Field(default_factory=list)
    recipients: List[str] = Field(default_factory=list, description="Alert email targets")
    webhooks: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    previous_hash: Optional[str] = None
    entry_hash: Optional[str] = None

    def to_jsonl(self) -> str:
        return json.dumps(self.model_dump(mode="json"), default=str)

    @classmethod
    def from_jsonl(cls, line: str) -> "SecurityAlert":
        return cls.model_validate(json.loads(line))
