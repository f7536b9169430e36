"""Data schemas - canonical Pydantic definitions."""

from loginshield.data.schemas.common import Location, Record, UserContext, new_record_id, utc_now
from loginshield.data.schemas.fingerprint import (
    BrowserInfo,
    ClientAttributes,
    CpuInfo,
    DeviceSnapshot,
    EngineInfo,
    FingerprintRecord,
    HardwareInfo,
    OSInfo,
    RequestMetadata,
    ScreenInfo,
)
from loginshield.data.schemas.access_rule import (
    AccessRule,
    AlertRule,
    AllowRule,
    ChallengeRule,
    CityCondition,
    DateRange,
    DenyRule,
    GeofenceCondition,
    RegionCondition,
    RequireTwoFactorRule,
    RuleConditions,
    RuleStats,
    TimeRange,
    TimeWindow,
    parse_access_rule,
    parse_access_rules,
)
from loginshield.data.schemas.login_attempt import (
    AttemptHeaders,
    LoginAttempt,
    RiskFactor,
    SuspiciousReason,
)
from loginshield.data.schemas.trusted_device import (
    DeviceMetadata,
    FingerprintChange,
    FingerprintHistoryEntry,
    TrustedDevice,
)
from loginshield.data.schemas.session import Session

__all__ = [
    "Location",
    "Record",
    "UserContext",
    "new_record_id",
    "utc_now",
    "BrowserInfo",
    "ClientAttributes",
    "CpuInfo",
    "DeviceSnapshot",
    "EngineInfo",
    "FingerprintRecord",
    "HardwareInfo",
    "OSInfo",
    "RequestMetadata",
    "ScreenInfo",
    "AccessRule",
    "AlertRule",
    "AllowRule",
    "ChallengeRule",
    "CityCondition",
    "DateRange",
    "DenyRule",
    "GeofenceCondition",
    "RegionCondition",
    "RequireTwoFactorRule",
    "RuleConditions",
    "RuleStats",
    "TimeRange",
    "TimeWindow",
    "parse_access_rule",
    "parse_access_rules",
    "AttemptHeaders",
    "LoginAttempt",
    "RiskFactor",
    "SuspiciousReason",
    "DeviceMetadata",
    "FingerprintChange",
    "FingerprintHistoryEntry",
    "TrustedDevice",
    "Session",
]
