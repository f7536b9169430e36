"""Fingerprint Agent Output Schemas."""

from typing import List

from pydantic import BaseModel, Field

from loginshield.core.types import Severity
from loginshield.data.schemas.trusted_device import FingerprintChange


class DriftReport(BaseModel):
    """Field-by-field comparison of two fingerprints."""

    has_changes: bool = Field(default=False)
    changes: List[FingerprintChange] = Field(default_factory=list)
    severity: Severity = Field(
        default=Severity.LOW,
        description="high when more than the configured number of major fields changed",
    )
    major_changes: int = Field(default=0, ge=0)
    total_changes: int = Field(default=0, ge=0)

    model_config = {
        "json_schema_extra": {
            "example": {
                "has_changes": True,
                "changes": [
                    {"field": "os.name", "old_value": "Windows", "new_value": "Mac OS X", "is_major": True},
                ],
                "severity": "medium",
                "major_changes": 1,
                "total_changes": 1,
            }
        }
    }


class IpInfo(BaseModel):
    """Classification of a client IP address."""

    ip: str
    is_valid: bool = False
    is_localhost: bool = False
    is_private: bool = False
    is_public: bool = False
