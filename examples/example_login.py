"""Example: a new phone logs in after an established desktop."""

import asyncio

from loginshield.common.logging import configure_logging, get_logger
from loginshield.data.schemas.common import UserContext
from loginshield.data.schemas.fingerprint import ClientAttributes, RequestMetadata, ScreenInfo
from loginshield.orchestration import LoginRequest, create_engine

logger = get_logger(__name__)

DESKTOP_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
PHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


def _login(user_agent, client, country):
    return LoginRequest(
        request=RequestMetadata(
            ip="203.0.113.50",
            headers={"User-Agent": user_agent, "CF-IPCountry": country},
        ),
        client=client,
        user=UserContext(user_id="user_456", email="rider@example.com", role="rider"),
    )


async def example_device_change_scenario():
    """
    Example scenario: device change.

    1. Desktop logs in and becomes the known device
    2. A phone logs in from another country
    3. Drift is high, so the phone is held for verification
    4. The caller verifies the phone
    5. The phone logs in normally
    """
    engine = create_engine()
    await engine.rules.create(
        {"name": "Alert on FR logins", "kind": "alert", "conditions": {"countries": ["FR"]}}
    )

    desktop = ClientAttributes(
        screen=ScreenInfo(width=1920, height=1080), timezone="America/New_York", platform="Win32"
    )
    phone = ClientAttributes(
        screen=ScreenInfo(width=390, height=844), timezone="Europe/Paris", platform="iPhone"
    )

    first = await engine.orchestrator.evaluate(_login(DESKTOP_UA, desktop, "US"))
    logger.info(f"Desktop login: {first.status.value}, trust {first.trust_score}")

    held = await engine.orchestrator.evaluate(_login(PHONE_UA, phone, "FR"))
    logger.info(f"Phone login: {held.status.value} ({held.message})")

    await engine.orchestrator.complete_device_verification(held.device.id)
    after = await engine.orchestrator.evaluate(_login(PHONE_UA, phone, "FR"))
    logger.info(f"Phone after verification: {after.status.value}, trust {after.trust_score}")

    return after


if __name__ == "__main__":
    configure_logging("INFO")
    decision = asyncio.run(example_device_change_scenario())
    print(f"Final decision: {decision.status.value}")
