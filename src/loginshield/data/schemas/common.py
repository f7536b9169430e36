"""Shared schema pieces - record base, location, user context."""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def new_record_id() -> str:
    return uuid4().hex


class Record(BaseModel):
    """Base for every persisted record."""
    id: str = Field(default_factory=new_record_id, description="Record identifier")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class Location(BaseModel):
    """Geographic and network location of a request.

    Supplied by the caller; the engine never resolves IPs itself.
    """
    ip: Optional[str] = Field(default=None, description="Client IP address")
    country: Optional[str] = Field(default=None, description="ISO 3166-1 alpha-2 country code")
    region: Optional[str] = Field(default=None, description="Region or state")
    city: Optional[str] = Field(default=None, description="City name")
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    timezone: Optional[str] = Field(default=None, description="IANA timezone name")
    isp: Optional[str] = Field(default=None)

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    model_config = {
        "json_schema_extra": {
            "example": {
                "ip": "203.0.113.7",
                "country": "US",
                "region": "NY",
                "city": "New York",
                "latitude": 40.7128,
                "longitude": -74.0060,
                "timezone": "America/New_York",
            }
        }
    }


class UserContext(BaseModel):
    """The already-authenticated user the engine is asked about."""
    user_id: str = Field(..., description="User identifier")
    role: Optional[str] = Field(default=None, description="User role (admin, dispatcher, driver, ...)")
    email: str = Field(..., description="Login email")
