"""Tests for Fingerprint Agent."""

from datetime import datetime, timedelta, timezone

import pytest

from loginshield.agents.fingerprint.agent import FingerprintAgent, parse_cpu, parse_engine
from loginshield.common.config.policy import DriftPolicy
from loginshield.core.types import Severity, TrustLevel
from loginshield.data.schemas.fingerprint import ClientAttributes, RequestMetadata, ScreenInfo
from loginshield.data.schemas.trusted_device import TrustedDevice

CHROME_WINDOWS_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
SAFARI_IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
FIREFOX_LINUX_UA = "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0"
GOOGLEBOT_UA = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"

NOW = datetime(2026, 3, 4, 15, 0, tzinfo=timezone.utc)


def _request(user_agent=CHROME_WINDOWS_UA, ip="203.0.113.7"):
    headers = {"User-Agent": user_agent} if user_agent else {}
    return RequestMetadata(ip=ip, headers=headers)


class TestFingerprintGeneration:
    """Test suite for fingerprint generation."""

    @pytest.fixture
    def agent(self):
        return FingerprintAgent()

    @pytest.fixture
    def client(self):
        return ClientAttributes(
            screen=ScreenInfo(width=1920, height=1080, color_depth=24),
            timezone="America/New_York",
            platform="Win32",
            canvas="abc123",
            hardware_concurrency=8,
        )

    def test_parses_user_agent(self, agent, client):
        """Browser, OS and device class come from the UA."""
        record = agent.generate(_request(), client)

        assert record.browser.name == "Chrome"
        assert record.browser.major == "120"
        assert record.os.name == "Windows"
        assert record.device.type == "desktop"
        assert record.engine.name == "Blink"
        assert record.cpu.architecture == "amd64"
        assert record.is_bot is False
        assert len(record.fingerprint) == 64

    def test_mobile_device_type(self, agent):
        """An iPhone UA is a mobile device."""
        record = agent.generate(_request(SAFARI_IPHONE_UA))
        assert record.device.type == "mobile"
        assert record.os.name == "iOS"
        assert FingerprintAgent.device_category(record) == "mobile"

    def test_hash_is_deterministic(self, agent, client):
        """Identical inputs hash identically."""
        first = agent.generate(_request(), client)
        second = agent.generate(_request(), client)
        assert first.fingerprint == second.fingerprint

    def test_hash_ignores_ip(self, agent, client):
        """The same device from another network keeps its identity."""
        home = agent.generate(_request(ip="203.0.113.7"), client)
        office = agent.generate(_request(ip="198.51.100.20"), client)
        assert home.fingerprint == office.fingerprint
        assert home.ip != office.ip

    def test_hash_changes_with_stable_attribute(self, agent, client):
        """A different canvas hash is a different device."""
        other = client.model_copy(update={"canvas": "zzz999"})
        assert agent.generate(_request(), client).fingerprint != agent.generate(_request(), other).fingerprint

    def test_missing_user_agent(self, agent):
        """No UA still yields a complete, hashable record."""
        record = agent.generate(RequestMetadata())
        assert record.browser.name == "Unknown"
        assert record.os.name == "Unknown"
        assert record.ip == "Unknown"
        assert record.user_agent is None
        assert record.fingerprint == agent.generate(RequestMetadata()).fingerprint

    def test_camel_case_client_attributes(self, agent):
        """Client attributes accept the browser's camelCase names."""
        client = ClientAttributes.model_validate(
            {"hardwareConcurrency": 4, "deviceMemory": 8, "screen": {"width": 800, "colorDepth": 24}}
        )
        record = agent.generate(_request(), client)
        assert record.hardware_concurrency == 4
        assert record.screen.color_depth == 24

    def test_accept_language_recorded(self, agent):
        """Request headers are read case-insensitively."""
        request = RequestMetadata(headers={"user-agent": FIREFOX_LINUX_UA, "ACCEPT-LANGUAGE": "fr-FR"})
        record = agent.generate(request)
        assert record.accept_language == "fr-FR"
        assert record.accept_encoding == "Unknown"
        assert record.browser.name == "Firefox"
        assert record.engine.name == "Gecko"


class TestUserAgentTokens:
    """Engine and CPU token parsing."""

    def test_engine_tokens(self):
        assert parse_engine(SAFARI_IPHONE_UA).name == "WebKit"
        assert parse_engine(FIREFOX_LINUX_UA).version == "121.0"
        assert parse_engine("").name == "Unknown"

    def test_cpu_tokens(self):
        assert parse_cpu(FIREFOX_LINUX_UA).architecture == "amd64"
        assert parse_cpu("Mozilla/5.0 (Linux; aarch64)").architecture == "arm64"
        assert parse_cpu(SAFARI_IPHONE_UA).architecture == "Unknown"


class TestTrustScore:
    """Test suite for the additive trust score."""

    @pytest.fixture
    def agent(self):
        return FingerprintAgent()

    def _device(self, **overrides):
        fields = {
            "user_id": "user_001",
            "fingerprint": "fp-1",
            "first_seen": NOW - timedelta(days=30),
        }
        fields.update(overrides)
        return TrustedDevice(**fields)

    def test_new_device_with_matching_fingerprint(self, agent):
        """Only the fingerprint bonus applies to a fresh device."""
        assert agent.trust_score(self._device(), "fp-1", now=NOW) == 20

    def test_verified_trusted_device(self, agent):
        """Verified, long-trusted, often used: all bonuses stack and clamp."""
        device = self._device(
            is_verified=True,
            verified_at=NOW - timedelta(days=30),
            trust_level=TrustLevel.VERIFIED,
            login_count=15,
        )
        # 40 + 20 + 20 + 20 = 100
        assert agent.trust_score(device, "fp-1", now=NOW) == 100

    def test_age_points_are_capped(self, agent):
        """Days trusted stop adding after the cap."""
        device = self._device(trust_level=TrustLevel.TRUSTED, first_seen=NOW - timedelta(days=3))
        assert agent.trust_score(device, now=NOW) == 6
        old = self._device(trust_level=TrustLevel.TRUSTED, first_seen=NOW - timedelta(days=365))
        assert agent.trust_score(old, now=NOW) == 20

    def test_age_points_only_for_trusted_levels(self, agent):
        """A recognized device gets no days-trusted bonus."""
        device = self._device(trust_level=TrustLevel.RECOGNIZED, first_seen=NOW - timedelta(days=365))
        assert agent.trust_score(device, now=NOW) == 0

    def test_failures_never_go_below_zero(self, agent):
        """Heavy failure counts clamp to zero."""
        device = self._device(failed_attempts=50, login_count=3)
        assert agent.trust_score(device, "fp-1", now=NOW) == 0

    def test_more_logins_never_lower_the_score(self, agent):
        """Monotonic in login count."""
        scores = [
            agent.trust_score(self._device(login_count=n), "fp-1", now=NOW)
            for n in range(0, 15)
        ]
        assert scores == sorted(scores)

    def test_more_failures_never_raise_the_score(self, agent):
        """Monotonic in failure count."""
        scores = [
            agent.trust_score(self._device(failed_attempts=n, login_count=10), "fp-1", now=NOW)
            for n in range(0, 12)
        ]
        assert scores == sorted(scores, reverse=True)

    def test_accepts_fingerprint_record(self, agent):
        """The current fingerprint may be passed as a record."""
        record = agent.generate(_request())
        device = self._device(fingerprint=record.fingerprint)
        assert agent.trust_score(device, record, now=NOW) == 20


class TestDriftDetection:
    """Test suite for fingerprint drift."""

    @pytest.fixture
    def agent(self):
        return FingerprintAgent()

    @pytest.fixture
    def desktop(self, agent):
        client = ClientAttributes(platform="Win32", timezone="America/New_York")
        return agent.generate(_request(CHROME_WINDOWS_UA), client)

    def test_identical_fingerprints(self, agent, desktop):
        """No changes is low severity."""
        report = agent.detect_drift(desktop, desktop)
        assert report.has_changes is False
        assert report.severity == Severity.LOW

    def test_minor_change_is_low(self, agent, desktop):
        """A timezone change alone is not major."""
        moved = desktop.model_copy(update={"timezone": "Europe/London"})
        report = agent.detect_drift(desktop, moved)
        assert report.has_changes is True
        assert report.major_changes == 0
        assert report.severity == Severity.LOW
        assert report.changes[0].field == "timezone"

    def test_one_major_change_is_medium(self, agent, desktop):
        """A single platform change is medium."""
        changed = desktop.model_copy(update={"platform": "Linux x86_64"})
        report = agent.detect_drift(desktop, changed)
        assert report.major_changes == 1
        assert report.severity == Severity.MEDIUM

    def test_new_device_class_is_high(self, agent, desktop):
        """Desktop Chrome to iPhone Safari changes every major field."""
        phone = agent.generate(_request(SAFARI_IPHONE_UA), ClientAttributes(platform="iPhone"))
        report = agent.detect_drift(desktop, phone)
        assert report.major_changes == 4
        assert report.severity == Severity.HIGH

    def test_cutoffs_come_from_policy(self, desktop):
        """A stricter policy grades the same change higher."""
        strict = FingerprintAgent(drift_policy=DriftPolicy(high_major_changes=0, medium_major_changes=0))
        changed = desktop.model_copy(update={"platform": "MacIntel"})
        assert strict.detect_drift(desktop, changed).severity == Severity.HIGH


class TestNetworkClassification:
    """IP address and bot helpers."""

    def test_ipv4_mapped_prefix_stripped(self):
        info = FingerprintAgent.parse_ip_address("::ffff:203.0.113.7")
        assert info.ip == "203.0.113.7"
        assert info.is_public is True

    def test_private_and_loopback(self):
        assert FingerprintAgent.parse_ip_address("192.168.1.10").is_private is True
        loopback = FingerprintAgent.parse_ip_address("127.0.0.1")
        assert loopback.is_localhost is True
        assert loopback.is_private is False
        assert FingerprintAgent.parse_ip_address("localhost").is_localhost is True

    @pytest.mark.parametrize("ip", ["10.1.2.3", "172.16.0.1", "172.31.255.254", "192.168.0.1"])
    def test_rfc1918_is_private(self, ip):
        info = FingerprintAgent.parse_ip_address(ip)
        assert info.is_private is True
        assert info.is_public is False

    @pytest.mark.parametrize(
        "ip", ["203.0.113.7", "198.51.100.4", "192.0.2.1", "169.254.1.1", "172.32.0.1", "8.8.8.8"]
    )
    def test_other_addresses_are_public(self, ip):
        """Only the RFC 1918 blocks count as private."""
        info = FingerprintAgent.parse_ip_address(ip)
        assert info.is_private is False
        assert info.is_public is True

    def test_invalid_ip(self):
        info = FingerprintAgent.parse_ip_address("not-an-ip")
        assert info.is_valid is False
        assert info.is_public is False

    def test_bot_detection(self):
        agent = FingerprintAgent()
        assert FingerprintAgent.is_likely_bot(agent.generate(_request(GOOGLEBOT_UA))) is True
        assert FingerprintAgent.is_likely_bot(agent.generate(_request())) is False
