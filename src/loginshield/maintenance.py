"""Retention maintenance - the periodic cleanup job.

Not part of the login path. Run it from an external scheduler.
"""

import logging
from datetime import datetime
from typing import Dict, Optional

from loginshield.common.config.policy import RetentionPolicy
from loginshield.data.schemas.common import utc_now
from loginshield.repositories.login_attempts import LoginAttemptRepository
from loginshield.repositories.sessions import SessionRepository
from loginshield.repositories.trusted_devices import TrustedDeviceRepository

logger = logging.getLogger(__name__)


async def run_retention_cleanup(
    attempts: LoginAttemptRepository,
    devices: TrustedDeviceRepository,
    sessions: SessionRepository,
    policy: Optional[RetentionPolicy] = None,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """Apply every retention window once.

    Returns:
        Deleted record counts per collection
    """
    policy = policy or RetentionPolicy()
    now = now or utc_now()

    result = {
        "login_attempts": await attempts.purge_expired(policy.login_attempt_days, now=now),
        "trusted_devices": await devices.cleanup_old_devices(policy.dormant_device_days, now=now),
        "sessions": await sessions.cleanup(policy.session_days, now=now),
    }
    logger.info("Retention cleanup finished", extra=result)
    return result
