"""Session Anomaly Detector Output Schema."""

from typing import List, Optional

from pydantic import BaseModel, Field

from loginshield.core.types import AnomalyType


class SessionRef(BaseModel):
    """Session reference carried by an anomaly."""
    session_id: str
    ip_address: Optional[str] = None
    country: Optional[str] = None


class SessionAnomaly(BaseModel):
    type: AnomalyType
    description: str
    sessions: List[SessionRef] = Field(default_factory=list)
    count: Optional[int] = Field(default=None, description="Session count for concurrency anomalies")

    model_config = {
        "json_schema_extra": {
            "example": {
                "type": "impossible-travel",
                "description": "Sessions from US and FR 0.5 hours apart",
                "sessions": [
                    {"session_id": "a1", "ip_address": "203.0.113.7", "country": "US"},
                    {"session_id": "b2", "ip_address": "198.51.100.4", "country": "FR"},
                ],
            }
        }
    }
