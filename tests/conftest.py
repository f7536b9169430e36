"""Shared fixtures for the LoginShield test suite."""

from datetime import datetime, timezone
from typing import List, Optional

import pytest

from loginshield.common.config.policy import SecurityPolicy
from loginshield.data.schemas.common import Location, UserContext
from loginshield.data.schemas.fingerprint import ClientAttributes, RequestMetadata, ScreenInfo
from loginshield.governance.alerts.schemas import SecurityAlert
from loginshield.governance.alerts.sink import AlertSink
from loginshield.orchestration.decision_context import LoginRequest
from loginshield.orchestration.decision_flow import LoginShieldEngine
from loginshield.storage.memory import InMemoryDocumentStore

CHROME_WINDOWS_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
SAFARI_IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
FIREFOX_LINUX_UA = "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0"


class CollectingAlertSink(AlertSink):
    """Keeps emitted alerts in memory."""

    def __init__(self):
        self.alerts: List[SecurityAlert] = []

    def emit(self, alert: SecurityAlert) -> SecurityAlert:
        self.alerts.append(alert)
        return alert


@pytest.fixture
def now():
    """Fixed evaluation time: Wednesday 2026-03-04 15:00 UTC."""
    return datetime(2026, 3, 4, 15, 0, tzinfo=timezone.utc)


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def policy():
    return SecurityPolicy()


@pytest.fixture
def alert_sink():
    return CollectingAlertSink()


@pytest.fixture
def engine(store, policy, alert_sink):
    return LoginShieldEngine(store, policy, alert_sink)


@pytest.fixture
def desktop_client():
    return ClientAttributes(
        screen=ScreenInfo(width=1920, height=1080, color_depth=24),
        timezone="America/New_York",
        platform="Win32",
        webgl="ANGLE (NVIDIA GeForce RTX 3060)",
        canvas="c4nv45h45h",
        hardware_concurrency=8,
        device_memory=16,
        color_depth=24,
    )


@pytest.fixture
def phone_client():
    return ClientAttributes(
        screen=ScreenInfo(width=390, height=844, color_depth=32),
        timezone="Europe/Paris",
        platform="iPhone",
        webgl="Apple GPU",
        touch_support=True,
        hardware_concurrency=6,
        color_depth=32,
    )


@pytest.fixture
def make_login(desktop_client):
    """Factory for LoginRequest objects."""

    def _make(
        user_agent: str = CHROME_WINDOWS_UA,
        client: Optional[ClientAttributes] = None,
        ip: str = "203.0.113.7",
        country: Optional[str] = "US",
        user_id: str = "user_001",
        role: Optional[str] = "driver",
        email: str = "driver@example.com",
        location: Optional[Location] = None,
        two_factor_verified: bool = False,
    ) -> LoginRequest:
        headers = {"User-Agent": user_agent, "Accept-Language": "en-US,en;q=0.9"}
        if country:
            headers["CF-IPCountry"] = country
        return LoginRequest(
            request=RequestMetadata(ip=ip, headers=headers),
            client=client if client is not None else desktop_client,
            user=UserContext(user_id=user_id, role=role, email=email),
            location=location,
            two_factor_verified=two_factor_verified,
        )

    return _make
