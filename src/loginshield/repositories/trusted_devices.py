"""Trusted device repository - device upsert, counters and trust transitions.

All counter changes use atomic store updates. Level and block transitions
are applied with conditional filters so concurrent logins from the same
device cannot lose them.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from loginshield.common.config.policy import DevicePolicy
from loginshield.common.constants import DeviceConstants, RetentionConstants, StorageConstants
from loginshield.core.types import Severity, TrustLevel, VerificationMethod
from loginshield.data.schemas.common import Location, utc_now
from loginshield.data.schemas.fingerprint import FingerprintRecord
from loginshield.data.schemas.login_attempt import SuspiciousReason
from loginshield.data.schemas.trusted_device import (
    DeviceMetadata,
    FingerprintChange,
    FingerprintHistoryEntry,
    TrustedDevice,
)
from loginshield.repositories.base import Repository, to_document

logger = logging.getLogger(__name__)

MAX_TRUST_SCORE = 100


def describe_device(record: FingerprintRecord) -> str:
    """Human-readable device name, e.g. "Chrome on Windows"."""
    name = f"{record.browser.name} on {record.os.name}"
    if record.device.model != DeviceConstants.UNKNOWN:
        name = f"{record.device.model} - {name}"
    return name


class TrustedDeviceRepository(Repository[TrustedDevice]):
    """Persistence for trusted devices."""

    collection = "trusted_devices"
    model = TrustedDevice

    def __init__(self, store, policy: Optional[DevicePolicy] = None):
        super().__init__(store)
        self._policy = policy or DevicePolicy()

    async def find_device(self, user_id: str, fingerprint: str) -> Optional[TrustedDevice]:
        return self._parse(
            await self._store.find_one(self.collection, {"user_id": user_id, "fingerprint": fingerprint})
        )

    async def find_or_create(
        self,
        user_id: str,
        record: FingerprintRecord,
        language: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> TrustedDevice:
        """Resolve the device for (user, fingerprint), creating it on first sight.

        A single upsert, so concurrent first logins end up with one record.
        A new device is first and last seen at ``now``.
        """
        now = now or utc_now()
        screen = record.screen
        resolution = f"{screen.width}x{screen.height}" if screen.width and screen.height else None
        device = TrustedDevice(
            user_id=user_id,
            fingerprint=record.fingerprint,
            device_info=record.to_snapshot(),
            device_name=describe_device(record),
            trust_level=TrustLevel.RECOGNIZED,
            trust_score=self._policy.default_trust_score,
            first_seen=now,
            last_seen=now,
            created_at=now,
            updated_at=now,
            metadata=DeviceMetadata(
                screen_resolution=resolution,
                timezone=record.timezone,
                language=language,
                hardware_concurrency=record.hardware_concurrency,
                device_memory=record.device_memory,
                touch_support=record.touch_support,
            ),
        )
        document = await self._store.find_one_and_update(
            self.collection,
            {"user_id": user_id, "fingerprint": record.fingerprint},
            {"$setOnInsert": to_document(device)},
            upsert=True,
            return_new=True,
        )
        return self._validate(document)

    async def latest_other_device(self, user_id: str, exclude_id: str) -> Optional[TrustedDevice]:
        """Most recently seen unblocked device of the user, other than ``exclude_id``."""
        return self._parse(
            await self._store.find_one(
                self.collection,
                {"user_id": user_id, "id": {"$ne": exclude_id}, "is_blocked": False},
                sort=[("last_seen", -1)],
            )
        )

    async def get_user_devices(
        self,
        user_id: str,
        include_blocked: bool = True,
        trust_level: Optional[TrustLevel] = None,
        limit: int = StorageConstants.DEFAULT_QUERY_LIMIT,
    ) -> List[TrustedDevice]:
        query: Dict[str, Any] = {"user_id": user_id}
        if not include_blocked:
            query["is_blocked"] = False
        if trust_level is not None:
            query["trust_level"] = trust_level
        docs = await self._store.find(self.collection, query, sort=[("last_seen", -1)], limit=limit)
        return self._parse_many(docs)

    async def record_success(
        self,
        device_id: str,
        location: Optional[Location] = None,
        now: Optional[datetime] = None,
    ) -> TrustedDevice:
        """Count a successful login, reset failures, promote to trusted when earned."""
        now = now or utc_now()
        fields: Dict[str, Any] = {"last_seen": now, "failed_attempts": 0}
        if location is not None and location.ip:
            fields["last_location"] = location.model_dump(mode="python")
        device = await self._update_by_id(device_id, {"$inc": {"login_count": 1}, "$set": fields})

        promoted = await self._store.find_one_and_update(
            self.collection,
            {
                "id": device_id,
                "trust_level": TrustLevel.RECOGNIZED,
                "login_count": {"$gt": self._policy.trusted_login_threshold},
            },
            {"$set": {"trust_level": TrustLevel.TRUSTED, "updated_at": now}},
        )
        if promoted is not None:
            logger.info("Device promoted to trusted", extra={"device_id": device_id})
            return self._validate(promoted)
        return device

    async def record_failure(self, device_id: str, now: Optional[datetime] = None) -> TrustedDevice:
        """Count a failed login. Marks suspicious, then blocks, at the policy thresholds."""
        now = now or utc_now()
        device = await self._update_by_id(
            device_id,
            {"$inc": {"failed_attempts": 1}, "$set": {"last_seen": now}},
        )
        failures = device.failed_attempts

        if failures >= self._policy.suspicious_failure_threshold:
            severity = (
                Severity.HIGH
                if failures >= self._policy.high_severity_failure_threshold
                else Severity.MEDIUM
            )
            reason = SuspiciousReason(reason=f"{failures} failed login attempts", severity=severity)
            device = await self._update_by_id(
                device_id,
                {
                    "$set": {"is_suspicious": True},
                    "$push": {"suspicious_reasons": reason.model_dump(mode="python")},
                },
            )

        if failures >= self._policy.block_failure_threshold:
            blocked = await self._store.find_one_and_update(
                self.collection,
                {"id": device_id, "is_blocked": False},
                {
                    "$set": {
                        "is_blocked": True,
                        "blocked_at": now,
                        "blocked_reason": "Too many failed login attempts",
                        "updated_at": now,
                    }
                },
            )
            if blocked is not None:
                logger.warning(
                    "Device auto-blocked",
                    extra={"device_id": device_id, "failed_attempts": failures},
                )
                device = self._validate(blocked)

        return device

    async def record_failure_for(
        self,
        user_id: str,
        fingerprint: str,
        now: Optional[datetime] = None,
    ) -> Optional[TrustedDevice]:
        """record_failure() for the (user, fingerprint) device, if it exists."""
        device = await self.find_device(user_id, fingerprint)
        if device is None:
            return None
        return await self.record_failure(device.id, now=now)

    async def update_fingerprint(
        self,
        device_id: str,
        record: FingerprintRecord,
        changes: List[FingerprintChange],
        previous_fingerprint: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> TrustedDevice:
        """Move the device to a new fingerprint and log the previous one.

        More than ``significant_change_count`` changes mark the device
        suspicious and cost trust.
        """
        now = now or utc_now()
        if previous_fingerprint is None:
            previous_fingerprint = (await self.require(device_id)).fingerprint

        entry = FingerprintHistoryEntry(
            fingerprint=previous_fingerprint,
            changed_at=now,
            changes=changes,
        )
        update: Dict[str, Any] = {
            "$set": {
                "fingerprint": record.fingerprint,
                "device_info": record.to_snapshot().model_dump(mode="python"),
                "last_seen": now,
            },
            "$push": {"fingerprint_history": entry.model_dump(mode="python")},
        }

        significant = len(changes) > self._policy.significant_change_count
        if significant:
            reason = SuspiciousReason(
                reason=f"Significant device changes detected ({len(changes)} changes)",
                severity=Severity.MEDIUM,
            )
            update["$set"]["is_suspicious"] = True
            update["$push"]["suspicious_reasons"] = reason.model_dump(mode="python")

        device = await self._update_by_id(device_id, update)
        if significant:
            device = await self._adjust_trust_score(device_id, -self._policy.significant_change_penalty)
        return device

    async def _adjust_trust_score(self, device_id: str, delta: int) -> TrustedDevice:
        """Add ``delta`` to the trust score, clamped to [0, 100], without a read-modify-write."""
        if delta >= 0:
            guard = {"trust_score": {"$lte": MAX_TRUST_SCORE - delta}}
            bound = MAX_TRUST_SCORE
        else:
            guard = {"trust_score": {"$gte": -delta}}
            bound = 0

        updated = await self._store.find_one_and_update(
            self.collection,
            {"id": device_id, **guard},
            {"$inc": {"trust_score": delta}},
        )
        if updated is not None:
            return self._validate(updated)
        return await self._update_by_id(device_id, {"$set": {"trust_score": bound}})

    async def update_trust_score(
        self,
        device_id: str,
        score: int,
        now: Optional[datetime] = None,
    ) -> TrustedDevice:
        score = max(0, min(MAX_TRUST_SCORE, int(score)))
        return await self._update_by_id(
            device_id,
            {"$set": {"trust_score": score, "last_trust_score_update": now or utc_now()}},
        )

    async def verify(
        self,
        device_id: str,
        method: VerificationMethod = VerificationMethod.MANUAL,
        now: Optional[datetime] = None,
    ) -> TrustedDevice:
        """Mark the device verified and grant the verification trust bonus."""
        await self._update_by_id(
            device_id,
            {
                "$set": {
                    "is_verified": True,
                    "verification_method": method,
                    "verified_at": now or utc_now(),
                    "trust_level": TrustLevel.VERIFIED,
                }
            },
        )
        logger.info("Device verified", extra={"device_id": device_id, "method": method.value})
        return await self._adjust_trust_score(device_id, self._policy.verify_trust_bonus)

    async def block(
        self,
        device_id: str,
        reason: str = "Manual block",
        now: Optional[datetime] = None,
    ) -> TrustedDevice:
        device = await self._update_by_id(
            device_id,
            {
                "$set": {
                    "is_blocked": True,
                    "blocked_at": now or utc_now(),
                    "blocked_reason": reason,
                    "trust_level": TrustLevel.SUSPICIOUS,
                    "trust_score": 0,
                }
            },
        )
        logger.warning("Device blocked", extra={"device_id": device_id, "reason": reason})
        return device

    async def unblock(self, device_id: str) -> TrustedDevice:
        return await self._update_by_id(
            device_id,
            {
                "$set": {
                    "is_blocked": False,
                    "blocked_at": None,
                    "blocked_reason": None,
                    "failed_attempts": 0,
                    "trust_level": TrustLevel.RECOGNIZED,
                    "trust_score": self._policy.default_trust_score,
                }
            },
        )

    async def remember(self, device_id: str, days: int = 30, now: Optional[datetime] = None) -> TrustedDevice:
        now = now or utc_now()
        return await self._update_by_id(
            device_id,
            {"$set": {"remember_device": True, "remember_until": now + timedelta(days=days)}},
        )

    async def forget(self, device_id: str) -> TrustedDevice:
        return await self._update_by_id(
            device_id,
            {"$set": {"remember_device": False, "remember_until": None}},
        )

    async def rename(self, device_id: str, name: str) -> TrustedDevice:
        return await self._update_by_id(device_id, {"$set": {"device_name": name}})

    async def delete(self, device_id: str) -> bool:
        return await self._store.delete_many(self.collection, {"id": device_id}) > 0

    async def is_device_trusted(
        self,
        user_id: str,
        fingerprint: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """True for unblocked trusted/verified devices whose remember period has not lapsed.

        A lapsed remember period is cleared as a side effect.
        """
        now = now or utc_now()
        device = await self.find_device(user_id, fingerprint)
        if device is None or device.is_blocked or device.trust_level == TrustLevel.SUSPICIOUS:
            return False

        if device.remember_device and device.remember_until and now > device.remember_until:
            await self.forget(device.id)
            return False

        return device.trust_level in (TrustLevel.TRUSTED, TrustLevel.VERIFIED)

    async def user_device_stats(self, user_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or utc_now()
        devices = self._parse_many(await self._store.find(self.collection, {"user_id": user_id}))
        total = len(devices)
        return {
            "total": total,
            "trusted": sum(1 for d in devices if d.trust_level in (TrustLevel.TRUSTED, TrustLevel.VERIFIED)),
            "verified": sum(1 for d in devices if d.is_verified),
            "blocked": sum(1 for d in devices if d.is_blocked),
            "suspicious": sum(1 for d in devices if d.is_suspicious),
            "remembered": sum(
                1 for d in devices
                if d.remember_device and d.remember_until is not None and d.remember_until > now
            ),
            "average_trust_score": (sum(d.trust_score for d in devices) / total) if total else 0.0,
        }

    async def cleanup_old_devices(
        self,
        days_inactive: int = RetentionConstants.DORMANT_DEVICE_DAYS,
        now: Optional[datetime] = None,
    ) -> int:
        """Delete dormant, unverified devices that never earned trust."""
        cutoff = (now or utc_now()) - timedelta(days=days_inactive)
        deleted = await self._store.delete_many(
            self.collection,
            {
                "last_seen": {"$lt": cutoff},
                "trust_level": {"$in": [TrustLevel.UNKNOWN, TrustLevel.RECOGNIZED]},
                "is_verified": False,
            },
        )
        logger.info("Dormant devices removed", extra={"deleted": deleted})
        return deleted
