"""Fingerprint Agent - derives device identity, trust and drift.

Combines the parsed user agent, request network attributes and the
browser-supplied attributes into one FingerprintRecord. The identity hash
covers only the stable attributes, so the same device hashes the same way
from any IP at any time.

This agent never touches the store.
"""

import hashlib
import ipaddress
import json
import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from user_agents import parse as parse_user_agent

from loginshield.agents.fingerprint.schema import DriftReport, IpInfo
from loginshield.common.config.policy import DriftPolicy, TrustScorePolicy
from loginshield.common.constants import DeviceConstants
from loginshield.core.types import Severity, TrustLevel
from loginshield.data.schemas.common import utc_now
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
)
from loginshield.data.schemas.trusted_device import FingerprintChange, TrustedDevice

logger = logging.getLogger(__name__)

UNKNOWN = DeviceConstants.UNKNOWN

# Ordered: the first matching token wins
_ENGINE_PATTERNS = [
    (re.compile(r"Edge/([\d.]+)"), "EdgeHTML"),
    (re.compile(r"Trident/([\d.]+)"), "Trident"),
    (re.compile(r"Presto/([\d.]+)"), "Presto"),
    (re.compile(r"Chrom(?:e|ium)/([\d.]+)"), "Blink"),
    (re.compile(r"AppleWebKit/([\d.]+)"), "WebKit"),
    (re.compile(r"rv:([\d.]+)\) Gecko"), "Gecko"),
]

_CPU_PATTERNS = [
    (re.compile(r"(?:x86_64|x64|win64|wow64|amd64)", re.I), "amd64"),
    (re.compile(r"(?:arm64|aarch64)", re.I), "arm64"),
    (re.compile(r"\barm(?:v\d+\w*)?\b", re.I), "arm"),
    (re.compile(r"(?:i[3-6]86|x86)", re.I), "ia32"),
]

# RFC 1918 ranges; loopback is classified separately
PRIVATE_NETWORKS = (
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
)

BOT_KEYWORDS = (
    "bot", "crawler", "spider", "scraper", "curl", "wget",
    "python", "java", "http", "axios", "node", "fetch",
)

# Fields compared for drift; the boolean marks a major field
DRIFT_FIELDS = [
    ("browser.name", True),
    ("browser.version", False),
    ("os.name", True),
    ("device.type", True),
    ("platform", True),
    ("screen", False),
    ("timezone", False),
]

# Attributes that make up the identity hash
STABLE_FIELDS = (
    "browser", "os", "device", "screen", "timezone", "platform",
    "webgl", "canvas", "hardware_concurrency", "device_memory", "color_depth",
)


def _or_unknown(value: Optional[str]) -> str:
    if value is None:
        return UNKNOWN
    value = str(value).strip()
    return value if value and value != "Other" else UNKNOWN


def parse_engine(user_agent: str) -> EngineInfo:
    """Rendering engine from the UA tokens."""
    for pattern, name in _ENGINE_PATTERNS:
        match = pattern.search(user_agent)
        if match:
            version = match.group(1)
            if name == "Blink":
                # Blink reports through the WebKit token
                webkit = re.search(r"AppleWebKit/([\d.]+)", user_agent)
                version = webkit.group(1) if webkit else version
            return EngineInfo(name=name, version=version)
    return EngineInfo()


def parse_cpu(user_agent: str) -> CpuInfo:
    """CPU architecture from the UA tokens."""
    for pattern, architecture in _CPU_PATTERNS:
        if pattern.search(user_agent):
            return CpuInfo(architecture=architecture)
    return CpuInfo()


def _snapshot_value(snapshot: DeviceSnapshot, path: str) -> Any:
    value: Any = snapshot
    for part in path.split("."):
        value = getattr(value, part, None)
    if hasattr(value, "model_dump"):
        return value.model_dump()
    return value


class FingerprintAgent:
    """Fingerprint Agent - device identity and trust.

    Responsibilities:
    - Build a FingerprintRecord from request and client attributes
    - Score device trust from its history
    - Classify drift between two fingerprints

    Constraints:
    - Pure computation, no store access
    - generate() never raises
    """

    def __init__(
        self,
        trust_policy: Optional[TrustScorePolicy] = None,
        drift_policy: Optional[DriftPolicy] = None,
    ):
        """Initialize Fingerprint Agent.

        Args:
            trust_policy: Trust score weights. Defaults apply when None.
            drift_policy: Drift severity cutoffs. Defaults apply when None.
        """
        self._trust = trust_policy or TrustScorePolicy()
        self._drift = drift_policy or DriftPolicy()

    def generate(
        self,
        request: RequestMetadata,
        client: Optional[ClientAttributes] = None,
    ) -> FingerprintRecord:
        """Build the fingerprint of the requesting device.

        Missing attributes default to "Unknown" or None and still hash
        deterministically.

        Args:
            request: Server-side request metadata (IP, headers)
            client: Browser-supplied attributes, if any

        Returns:
            FingerprintRecord with its identity hash
        """
        client = client or ClientAttributes()
        user_agent = request.user_agent or ""

        browser, os_info, hardware, is_bot = BrowserInfo(), OSInfo(), HardwareInfo(), False
        if user_agent:
            try:
                browser, os_info, hardware, is_bot = self._parse_user_agent(user_agent)
            except Exception as e:
                logger.warning("User agent parsing failed", extra={"error": str(e)})

        fields: Dict[str, Any] = {
            "browser": browser,
            "engine": parse_engine(user_agent),
            "os": os_info,
            "device": hardware,
            "cpu": parse_cpu(user_agent),
            "ip": request.ip or UNKNOWN,
            "user_agent": user_agent or None,
            "accept_language": request.header("accept-language") or UNKNOWN,
            "accept_encoding": request.header("accept-encoding") or UNKNOWN,
            "screen": client.screen,
            "timezone": client.timezone,
            "platform": client.platform,
            "vendor": client.vendor,
            "webgl": client.webgl,
            "canvas": client.canvas,
            "fonts": client.fonts,
            "plugins": client.plugins,
            "audio_context": client.audio_context,
            "touch_support": client.touch_support,
            "hardware_concurrency": client.hardware_concurrency,
            "device_memory": client.device_memory,
            "color_depth": client.color_depth,
            "is_bot": is_bot,
            "timestamp": utc_now(),
        }
        fields["fingerprint"] = self.hash_attributes(fields)
        return FingerprintRecord(**fields)

    def _parse_user_agent(self, user_agent: str):
        ua = parse_user_agent(user_agent)

        version = ua.browser.version
        browser = BrowserInfo(
            name=_or_unknown(ua.browser.family),
            version=_or_unknown(ua.browser.version_string),
            major=str(version[0]) if version else UNKNOWN,
        )
        os_info = OSInfo(
            name=_or_unknown(ua.os.family),
            version=_or_unknown(ua.os.version_string),
        )

        if ua.is_tablet:
            device_type = "tablet"
        elif ua.is_mobile:
            device_type = "mobile"
        else:
            device_type = DeviceConstants.DEFAULT_DEVICE_TYPE
        hardware = HardwareInfo(
            type=device_type,
            vendor=_or_unknown(ua.device.brand),
            model=_or_unknown(ua.device.model),
        )
        return browser, os_info, hardware, bool(ua.is_bot)

    @staticmethod
    def hash_attributes(attributes: Dict[str, Any]) -> str:
        """SHA-256 over the canonical JSON of the stable attributes."""
        stable = {}
        for name in STABLE_FIELDS:
            value = attributes.get(name)
            if hasattr(value, "model_dump"):
                value = value.model_dump()
            stable[name] = value
        payload = json.dumps(stable, sort_keys=True, default=str, separators=(",", ":"))
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def trust_score(
        self,
        device: TrustedDevice,
        current_fingerprint: Union[FingerprintRecord, str, None] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """Additive trust score of a device, clamped to [0, 100].

        Args:
            device: Stored device record
            current_fingerprint: Fingerprint of the current request, or its hash
            now: Reference time for the days-trusted bonus

        Returns:
            Integer trust score
        """
        policy = self._trust
        score = 0.0

        if device.is_verified:
            score += policy.verified_bonus

        if device.trust_level in (TrustLevel.TRUSTED, TrustLevel.VERIFIED):
            elapsed = (now or utc_now()) - device.trusted_since()
            days_trusted = max(elapsed.total_seconds(), 0.0) / 86400
            score += min(days_trusted * policy.points_per_trusted_day, policy.max_age_points)

        if device.login_count > 0:
            score += min(device.login_count * policy.points_per_login, policy.max_login_points)

        if device.failed_attempts > 0:
            score -= device.failed_attempts * policy.failed_attempt_penalty

        current_hash = (
            current_fingerprint.fingerprint
            if isinstance(current_fingerprint, FingerprintRecord)
            else current_fingerprint
        )
        if current_hash and current_hash == device.fingerprint:
            score += policy.fingerprint_match_bonus

        return int(max(0.0, min(100.0, score)))

    def detect_drift(
        self,
        old: Union[DeviceSnapshot, FingerprintRecord],
        new: Union[DeviceSnapshot, FingerprintRecord],
    ) -> DriftReport:
        """Compare two fingerprints field by field and grade the change."""
        if isinstance(old, FingerprintRecord):
            old = old.to_snapshot()
        if isinstance(new, FingerprintRecord):
            new = new.to_snapshot()

        changes: List[FingerprintChange] = []
        for path, is_major in DRIFT_FIELDS:
            old_value = _snapshot_value(old, path)
            new_value = _snapshot_value(new, path)
            if old_value != new_value:
                changes.append(
                    FingerprintChange(field=path, old_value=old_value, new_value=new_value, is_major=is_major)
                )

        major = sum(1 for c in changes if c.is_major)
        if major > self._drift.high_major_changes:
            severity = Severity.HIGH
        elif major > self._drift.medium_major_changes:
            severity = Severity.MEDIUM
        else:
            severity = Severity.LOW

        return DriftReport(
            has_changes=bool(changes),
            changes=changes,
            severity=severity,
            major_changes=major,
            total_changes=len(changes),
        )

    @staticmethod
    def parse_ip_address(ip: Optional[str]) -> IpInfo:
        """Strip the IPv4-mapped prefix and classify the address."""
        clean = (ip or "").strip()
        if clean.lower().startswith("::ffff:"):
            clean = clean[7:]

        if clean == "localhost":
            return IpInfo(ip=clean, is_valid=True, is_localhost=True)
        try:
            address = ipaddress.ip_address(clean)
        except ValueError:
            return IpInfo(ip=clean)

        is_localhost = address.is_loopback
        is_private = address.version == 4 and any(address in network for network in PRIVATE_NETWORKS)
        return IpInfo(
            ip=clean,
            is_valid=True,
            is_localhost=is_localhost,
            is_private=is_private,
            is_public=not (is_localhost or is_private),
        )

    @staticmethod
    def device_category(record: Union[FingerprintRecord, DeviceSnapshot]) -> str:
        device_type = (record.device.type or DeviceConstants.DEFAULT_DEVICE_TYPE).lower()
        if device_type in ("mobile", "smartphone"):
            return "mobile"
        if device_type == "tablet":
            return "tablet"
        if device_type == "wearable":
            return "wearable"
        return "desktop"

    @staticmethod
    def is_likely_bot(record: FingerprintRecord) -> bool:
        """Parser bot flag or a tooling keyword in the browser/OS names."""
        if record.is_bot:
            return True
        names = f"{record.browser.name} {record.os.name}".lower()
        return any(keyword in names for keyword in BOT_KEYWORDS)
