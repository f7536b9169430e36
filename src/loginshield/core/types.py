"""Core types and enums."""

from enum import Enum


class RuleKind(str, Enum):
    """Effect of an access rule when it matches."""
    ALLOW = "allow"
    DENY = "deny"
    REQUIRE_2FA = "require_2fa"
    ALERT = "alert"
    CHALLENGE = "challenge"


class RuleScope(str, Enum):
    """Who an access rule applies to."""
    GLOBAL = "global"
    ROLE = "role"
    USER = "user"


class ChallengeType(str, Enum):
    """Secondary proof requested by a challenge rule."""
    CAPTCHA = "captcha"
    SECURITY_QUESTIONS = "security_questions"
    EMAIL_VERIFICATION = "email_verification"
    SMS_VERIFICATION = "sms_verification"


class TrustLevel(str, Enum):
    """Trust ladder of a device."""
    UNKNOWN = "unknown"
    SUSPICIOUS = "suspicious"
    RECOGNIZED = "recognized"
    TRUSTED = "trusted"
    VERIFIED = "verified"


class VerificationMethod(str, Enum):
    """How a device was verified."""
    EMAIL = "email"
    SMS = "sms"
    AUTHENTICATOR = "authenticator"
    MANUAL = "manual"
    BIOMETRIC = "biometric"


class FailureReason(str, Enum):
    """Why a login attempt failed."""
    INVALID_CREDENTIALS = "invalid_credentials"
    ACCOUNT_LOCKED = "account_locked"
    ACCOUNT_DISABLED = "account_disabled"
    TWO_FACTOR_REQUIRED = "2fa_required"
    TWO_FACTOR_FAILED = "2fa_failed"
    BIOMETRIC_FAILED = "biometric_failed"
    DEVICE_NOT_TRUSTED = "device_not_trusted"
    GEO_RESTRICTION = "geo_restriction"
    RATE_LIMITED = "rate_limited"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    OTHER = "other"


class AuthMethod(str, Enum):
    """Authentication method used by an attempt."""
    PASSWORD = "password"
    TWO_FACTOR = "2fa"
    SMS_CODE = "sms_code"
    OAUTH = "oauth"
    BIOMETRIC = "biometric"
    TRUSTED_DEVICE = "trusted_device"


class PatternType(str, Enum):
    """Attack pattern an attempt belongs to."""
    BRUTE_FORCE = "brute_force"
    CREDENTIAL_STUFFING = "credential_stuffing"
    ACCOUNT_TAKEOVER = "account_takeover"
    DISTRIBUTED_ATTACK = "distributed_attack"


class Severity(str, Enum):
    """Severity of a suspicion, alert or drift."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class LoginMethod(str, Enum):
    """How a session credential was obtained."""
    PASSWORD = "password"
    TWO_FACTOR = "two-factor"
    REFRESH_TOKEN = "refresh-token"
    ADMIN_IMPERSONATE = "admin-impersonate"


class RevokeReason(str, Enum):
    """Why a session was terminated."""
    USER_LOGOUT = "user-logout"
    ADMIN_REVOKE = "admin-revoke"
    SECURITY_BREACH = "security-breach"
    PASSWORD_CHANGE = "password-change"
    TOKEN_EXPIRED = "token-expired"
    SUSPICIOUS_ACTIVITY = "suspicious-activity"
    FORCED_LOGOUT = "forced-logout"


class SessionSuspicion(str, Enum):
    """Suspicion flags carried by a session."""
    MULTIPLE_IPS = "multiple-ips"
    IMPOSSIBLE_TRAVEL = "impossible-travel"
    UNUSUAL_ACTIVITY = "unusual-activity"
    FAILED_2FA = "failed-2fa"
    RATE_LIMIT_VIOLATION = "rate-limit-violation"


class AnomalyType(str, Enum):
    """Session anomaly kinds."""
    MULTIPLE_IPS = "multiple-ips"
    IMPOSSIBLE_TRAVEL = "impossible-travel"
    MULTIPLE_CONCURRENT_SESSIONS = "multiple-concurrent-sessions"


class DecisionStatus(str, Enum):
    """Terminal state of the login pipeline."""
    ALLOWED = "allowed"
    DENIED = "denied"
    PENDING_VERIFICATION = "pending_verification"
    PENDING_2FA = "pending_2fa"
    PENDING_CHALLENGE = "pending_challenge"


class DecisionReason(str, Enum):
    """Machine-readable reason attached to a decision."""
    GEO_RESTRICTION = "geo_restriction"
    DEVICE_BLOCKED = "device_blocked"
    DEVICE_CHANGED = "device_changed"
    GEO_REQUIRES_2FA = "geo_requires_2fa"
    GEO_CHALLENGE = "geo_challenge"
    SECURITY_CHECKS_FAILED = "security_checks_failed"
