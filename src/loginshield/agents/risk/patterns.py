"""Pattern detectors - brute force and credential stuffing.

Both detectors are advisory. A store failure degrades to "not detected"
and is logged; it never reaches the caller.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from loginshield.agents.risk.schema import BruteForceResult, CredentialStuffingResult
from loginshield.common.config.policy import BruteForcePolicy, CredentialStuffingPolicy
from loginshield.core.types import PatternType
from loginshield.data.schemas.common import utc_now
from loginshield.repositories.login_attempts import LoginAttemptRepository

logger = logging.getLogger(__name__)


class PatternDetector:
    """Attack Pattern Detector.

    Responsibilities:
    - Count failed attempts per email (brute force)
    - Count distinct failed emails per IP or device (credential stuffing)
    - Mark the attempts of a detected pattern

    Constraints:
    - Detection never raises
    - Read-only except for flag_pattern
    """

    def __init__(
        self,
        attempts: LoginAttemptRepository,
        brute_force: Optional[BruteForcePolicy] = None,
        credential_stuffing: Optional[CredentialStuffingPolicy] = None,
    ):
        """Initialize Pattern Detector.

        Args:
            attempts: Login attempt repository
            brute_force: Brute-force window and threshold
            credential_stuffing: Credential-stuffing window and threshold
        """
        self._attempts = attempts
        self._brute_force = brute_force or BruteForcePolicy()
        self._stuffing = credential_stuffing or CredentialStuffingPolicy()

    async def detect_brute_force(
        self,
        email: str,
        window_minutes: Optional[int] = None,
        threshold: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> BruteForceResult:
        """Failed attempts for an email within the trailing window.

        Args:
            email: Login email
            window_minutes: Window size, defaults to policy
            threshold: Count at which the pattern is reported, defaults to policy
            now: Window end, defaults to the current UTC time

        Returns:
            BruteForceResult; not detected on any error
        """
        window = window_minutes or self._brute_force.window_minutes
        limit = threshold or self._brute_force.threshold
        since = (now or utc_now()) - timedelta(minutes=window)

        try:
            count = await self._attempts.count_failed_for_email(email, since)
        except Exception as e:
            logger.error("Brute-force detection failed", extra={"email": email, "error": str(e)})
            return BruteForceResult(window_minutes=window, threshold=limit)

        return BruteForceResult(
            is_brute_force=count >= limit,
            count=count,
            window_minutes=window,
            threshold=limit,
        )

    async def detect_credential_stuffing(
        self,
        ip: Optional[str],
        fingerprint: Optional[str] = None,
        window_minutes: Optional[int] = None,
        threshold: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> CredentialStuffingResult:
        """Distinct emails among failed attempts sharing the IP or fingerprint.

        Args:
            ip: Source IP address
            fingerprint: Source device fingerprint hash
            window_minutes: Window size, defaults to policy
            threshold: Distinct-email count at which the pattern is reported
            now: Window end, defaults to the current UTC time

        Returns:
            CredentialStuffingResult; not detected on any error
        """
        window = window_minutes or self._stuffing.window_minutes
        limit = threshold or self._stuffing.threshold
        since = (now or utc_now()) - timedelta(minutes=window)

        try:
            per_email = await self._attempts.failed_emails_from_source(ip, fingerprint, since)
        except Exception as e:
            logger.error(
                "Credential-stuffing detection failed",
                extra={"ip": ip, "fingerprint": fingerprint, "error": str(e)},
            )
            return CredentialStuffingResult(threshold=limit)

        unique_accounts = len(per_email)
        return CredentialStuffingResult(
            is_credential_stuffing=unique_accounts >= limit,
            unique_accounts=unique_accounts,
            total_attempts=sum(per_email.values()),
            threshold=limit,
        )

    async def flag_pattern(
        self,
        pattern_type: PatternType,
        email: Optional[str] = None,
        ip: Optional[str] = None,
        fingerprint: Optional[str] = None,
        window_minutes: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """Mark the window's failed attempts as part of a pattern.

        Attempts are selected by email, or by IP or fingerprint when no
        email is given.

        Returns:
            Number of attempts newly flagged
        """
        if window_minutes is None:
            window_minutes = (
                self._brute_force.window_minutes
                if pattern_type == PatternType.BRUTE_FORCE
                else self._stuffing.window_minutes
            )
        since = (now or utc_now()) - timedelta(minutes=window_minutes)

        query: Dict[str, Any] = {"success": False, "created_at": {"$gte": since}}
        if email:
            query["email"] = email.strip().lower()
        else:
            sources = []
            if ip:
                sources.append({"location.ip": ip})
            if fingerprint:
                sources.append({"device_fingerprint": fingerprint})
            if not sources:
                return 0
            query["$or"] = sources

        flagged = await self._attempts.flag_pattern(query, pattern_type)
        if flagged:
            logger.warning(
                "Attempts flagged as attack pattern",
                extra={"pattern": pattern_type.value, "flagged": flagged, "email": email, "ip": ip},
            )
        return flagged
