"""Access rule schemas - geographic and time based login rules.

A rule is a tagged variant discriminated on ``kind``; the kind-specific
action settings live on the variant that needs them. Use
``parse_access_rule`` to validate raw documents at the storage boundary.
"""

import ipaddress
import re
from datetime import date, datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator

from loginshield.core.types import ChallengeType, RuleKind, RuleScope
from loginshield.data.schemas.common import Record

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class RegionCondition(BaseModel):
    country: str
    region: str


class CityCondition(BaseModel):
    country: str
    region: Optional[str] = None
    city: str


class GeofenceCondition(BaseModel):
    """Circular area; matches when the great-circle distance is <= radius."""
    name: Optional[str] = None
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    radius_km: float = Field(..., gt=0, description="Radius in kilometers")


class RuleConditions(BaseModel):
    """Location conditions. Any populated category matching is enough."""
    countries: List[str] = Field(default_factory=list, description="ISO country codes")
    regions: List[RegionCondition] = Field(default_factory=list)
    cities: List[CityCondition] = Field(default_factory=list)
    geofences: List[GeofenceCondition] = Field(default_factory=list)
    ip_addresses: List[str] = Field(default_factory=list)
    ip_ranges: List[str] = Field(default_factory=list, description="CIDR blocks")
    timezones: List[str] = Field(default_factory=list)

    @field_validator("countries")
    @classmethod
    def _upper_countries(cls, v: List[str]) -> List[str]:
        return [c.upper() for c in v]

    @field_validator("ip_ranges")
    @classmethod
    def _valid_cidrs(cls, v: List[str]) -> List[str]:
        for cidr in v:
            ipaddress.ip_network(cidr, strict=False)
        return v

    def is_empty(self) -> bool:
        return not any(
            (
                self.countries,
                self.regions,
                self.cities,
                self.geofences,
                self.ip_addresses,
                self.ip_ranges,
                self.timezones,
            )
        )


def _check_timezone(name: Optional[str]) -> Optional[str]:
    if name is None:
        return None
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"unknown timezone: {name!r}") from e
    return name


class TimeRange(BaseModel):
    """Inclusive HH:MM range. Wraps past midnight when end < start.

    Evaluated in its own timezone, or the window's timezone when unset.
    """
    start: str
    end: str
    timezone: Optional[str] = None

    @field_validator("start", "end")
    @classmethod
    def _hhmm(cls, v: str) -> str:
        if not _HHMM.match(v):
            raise ValueError(f"time must be HH:MM, got {v!r}")
        return v

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, v: Optional[str]) -> Optional[str]:
        return _check_timezone(v)


class DateRange(BaseModel):
    """Inclusive calendar date range."""
    start: date
    end: date

    @model_validator(mode="after")
    def _ordered(self) -> "DateRange":
        if self.end < self.start:
            raise ValueError("date range end precedes start")
        return self


class TimeWindow(BaseModel):
    """When a rule applies. Empty categories are not checked.

    Days of week and date ranges are evaluated in ``timezone``.
    """
    days_of_week: List[int] = Field(
        default_factory=list,
        description="0=Sunday .. 6=Saturday",
    )
    time_ranges: List[TimeRange] = Field(default_factory=list)
    date_ranges: List[DateRange] = Field(default_factory=list)
    timezone: str = Field(default="UTC", description="IANA timezone of the window")

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, v: str) -> str:
        return _check_timezone(v)

    def is_empty(self) -> bool:
        return not (self.days_of_week or self.time_ranges or self.date_ranges)

    @field_validator("days_of_week")
    @classmethod
    def _valid_days(cls, v: List[int]) -> List[int]:
        for day in v:
            if day < 0 or day > 6:
                raise ValueError(f"day of week out of range: {day}")
        return v


class RuleStats(BaseModel):
    total_triggered: int = 0
    success_count: int = 0
    denied_count: int = 0
    last_triggered: Optional[datetime] = None


class _AccessRuleBase(Record):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    scope: RuleScope = RuleScope.GLOBAL
    target_roles: List[str] = Field(default_factory=list)
    target_users: List[str] = Field(default_factory=list)
    conditions: RuleConditions = Field(default_factory=RuleConditions)
    time_window: TimeWindow = Field(default_factory=TimeWindow)
    custom_message: Optional[str] = None
    priority: int = Field(default=0, description="Higher is evaluated first")
    active: bool = True
    stats: RuleStats = Field(default_factory=RuleStats)
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    notes: Optional[str] = None

    @property
    def rule_kind(self) -> RuleKind:
        return RuleKind(getattr(self, "kind"))

    def applies_to(self, user_id: Optional[str], role: Optional[str]) -> bool:
        """Scope check."""
        if self.scope == RuleScope.GLOBAL:
            return True
        if self.scope == RuleScope.ROLE:
            return role is not None and role in self.target_roles
        if self.scope == RuleScope.USER:
            return user_id is not None and user_id in self.target_users
        return False


class AllowRule(_AccessRuleBase):
    kind: Literal["allow"] = "allow"


class DenyRule(_AccessRuleBase):
    kind: Literal["deny"] = "deny"
    deny_message: Optional[str] = None
    deny_duration_minutes: Optional[int] = Field(default=None, ge=0)


class RequireTwoFactorRule(_AccessRuleBase):
    kind: Literal["require_2fa"] = "require_2fa"


class AlertRule(_AccessRuleBase):
    kind: Literal["alert"] = "alert"
    alert_admins: bool = True
    alert_emails: List[str] = Field(default_factory=list)
    alert_webhook_url: Optional[str] = None


class ChallengeRule(_AccessRuleBase):
    kind: Literal["challenge"] = "challenge"
    challenge_type: ChallengeType = ChallengeType.CAPTCHA


AccessRule = Annotated[
    Union[AllowRule, DenyRule, RequireTwoFactorRule, AlertRule, ChallengeRule],
    Field(discriminator="kind"),
]

_access_rule_adapter: TypeAdapter = TypeAdapter(AccessRule)
_access_rule_list_adapter: TypeAdapter = TypeAdapter(List[AccessRule])


def parse_access_rule(data: Dict[str, Any]) -> AccessRule:
    """Validate a raw document into the matching rule variant.

    Raises:
        pydantic.ValidationError: On unknown kind or invalid fields
    """
    return _access_rule_adapter.validate_python(data)


def parse_access_rules(data: List[Dict[str, Any]]) -> List[AccessRule]:
    return _access_rule_list_adapter.validate_python(data)
