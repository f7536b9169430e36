"""Centralized constants for LoginShield defaults."""


# ===== FINGERPRINT & DEVICE TRUST =====
class DeviceConstants:
    UNKNOWN = "Unknown"
    DEFAULT_DEVICE_TYPE = "desktop"
    HASH_ALGORITHM = "sha256"

    # Trust score weights
    VERIFIED_BONUS = 40
    POINTS_PER_TRUSTED_DAY = 2
    MAX_AGE_POINTS = 20
    POINTS_PER_LOGIN = 2
    MAX_LOGIN_POINTS = 20
    FAILED_ATTEMPT_PENALTY = 5
    FINGERPRINT_MATCH_BONUS = 20
    DEFAULT_TRUST_SCORE = 50

    # Device state transitions
    TRUSTED_LOGIN_THRESHOLD = 5  # login_count must exceed this
    SUSPICIOUS_FAILURE_THRESHOLD = 3
    HIGH_SEVERITY_FAILURE_THRESHOLD = 5
    BLOCK_FAILURE_THRESHOLD = 10
    SIGNIFICANT_CHANGE_COUNT = 3
    SIGNIFICANT_CHANGE_PENALTY = 10
    VERIFY_TRUST_BONUS = 20

    # Drift severity
    HIGH_DRIFT_MAJOR_CHANGES = 2  # strictly more than this is "high"
    MEDIUM_DRIFT_MAJOR_CHANGES = 0


# ===== GEO RULES =====
class GeoConstants:
    EARTH_RADIUS_KM = 6371.0
    DEFAULT_DENY_MESSAGE = "Access denied from this location"


# ===== ATTACK PATTERNS =====
class PatternConstants:
    BRUTE_FORCE_WINDOW_MINUTES = 15
    BRUTE_FORCE_THRESHOLD = 5
    CREDENTIAL_STUFFING_WINDOW_MINUTES = 60
    CREDENTIAL_STUFFING_THRESHOLD = 10


# ===== ATTEMPT RISK SCORING =====
class RiskConstants:
    FAILED_ATTEMPT = 20
    MARKED_SUSPICIOUS = 30
    UNKNOWN_DEVICE = 10
    HIGH_RISK_FAILURE = 25
    ATTACK_PATTERN = 30
    MAX_SCORE = 100


# ===== SESSIONS =====
class SessionConstants:
    MAX_DISTINCT_IPS = 3
    IMPOSSIBLE_TRAVEL_HOURS = 2.0
    MAX_CONCURRENT_SESSIONS = 5
    DEFAULT_SESSION_HOURS = 24


# ===== RETENTION =====
class RetentionConstants:
    LOGIN_ATTEMPT_DAYS = 90
    DORMANT_DEVICE_DAYS = 90
    SESSION_DAYS = 30


# ===== STORAGE =====
class StorageConstants:
    DEFAULT_TIMEOUT_SECONDS = 2.0
    DEFAULT_QUERY_LIMIT = 50
    STATISTICS_TOP_N = 10
