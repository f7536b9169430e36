"""Risk Agent Output Schemas."""

from typing import List

from pydantic import BaseModel, Field

from loginshield.data.schemas.login_attempt import RiskFactor


class RiskAssessment(BaseModel):
    """Additive risk score of one attempt and the factors behind it."""
    score: int = Field(..., ge=0, le=100)
    factors: List[RiskFactor] = Field(default_factory=list)


class BruteForceResult(BaseModel):
    """Failed attempts against one email inside the window."""
    is_brute_force: bool = False
    count: int = Field(default=0, ge=0)
    window_minutes: int
    threshold: int


class CredentialStuffingResult(BaseModel):
    """Distinct emails failed from one IP or device inside the window."""
    is_credential_stuffing: bool = False
    unique_accounts: int = Field(default=0, ge=0)
    total_attempts: int = Field(default=0, ge=0)
    threshold: int
