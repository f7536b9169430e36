"""Login attempt repository - append-only attempt log and its queries."""

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from loginshield.common.constants import RetentionConstants, StorageConstants
from loginshield.core.types import PatternType
from loginshield.data.schemas.common import utc_now
from loginshield.data.schemas.login_attempt import LoginAttempt, SuspiciousReason
from loginshield.repositories.base import Repository, to_document

if TYPE_CHECKING:
    from loginshield.agents.risk.scorer import AttemptRiskScorer

logger = logging.getLogger(__name__)

NEWEST_FIRST = [("created_at", -1)]


class LoginAttemptRepository(Repository[LoginAttempt]):
    """Persistence for login attempts.

    Every attempt is risk-scored by the injected scorer before insertion.
    """

    collection = "login_attempts"
    model = LoginAttempt

    def __init__(self, store, scorer: "AttemptRiskScorer"):
        super().__init__(store)
        self._scorer = scorer

    async def record_attempt(self, attempt: LoginAttempt) -> LoginAttempt:
        """Score and persist an attempt."""
        scored = self._scorer.apply(attempt)
        document = await self._store.insert_one(self.collection, to_document(scored))
        logger.debug(
            "Login attempt recorded",
            extra={
                "attempt_id": scored.id,
                "success": scored.success,
                "risk_score": scored.risk_score,
            },
        )
        return self._validate(document)

    async def get_user_attempts(
        self,
        user_id: str,
        success: Optional[bool] = None,
        suspicious_only: bool = False,
        limit: int = StorageConstants.DEFAULT_QUERY_LIMIT,
    ) -> List[LoginAttempt]:
        query: Dict[str, Any] = {"user_id": user_id}
        if success is not None:
            query["success"] = success
        if suspicious_only:
            query["is_suspicious"] = True
        docs = await self._store.find(self.collection, query, sort=NEWEST_FIRST, limit=limit)
        return self._parse_many(docs)

    async def get_attempts_by_email(
        self,
        email: str,
        window_minutes: int = 24 * 60,
        success: Optional[bool] = None,
        limit: int = StorageConstants.DEFAULT_QUERY_LIMIT,
        now: Optional[datetime] = None,
    ) -> List[LoginAttempt]:
        since = (now or utc_now()) - timedelta(minutes=window_minutes)
        query: Dict[str, Any] = {"email": email.strip().lower(), "created_at": {"$gte": since}}
        if success is not None:
            query["success"] = success
        docs = await self._store.find(self.collection, query, sort=NEWEST_FIRST, limit=limit)
        return self._parse_many(docs)

    async def get_attempts_by_ip(
        self,
        ip: str,
        window_minutes: int = 24 * 60,
        limit: int = StorageConstants.DEFAULT_QUERY_LIMIT,
        now: Optional[datetime] = None,
    ) -> List[LoginAttempt]:
        since = (now or utc_now()) - timedelta(minutes=window_minutes)
        query = {"location.ip": ip, "created_at": {"$gte": since}}
        docs = await self._store.find(self.collection, query, sort=NEWEST_FIRST, limit=limit)
        return self._parse_many(docs)

    async def count_failed_for_email(self, email: str, since: datetime) -> int:
        return await self._store.count_documents(
            self.collection,
            {"email": email.strip().lower(), "success": False, "created_at": {"$gte": since}},
        )

    async def failed_emails_from_source(
        self,
        ip: Optional[str],
        fingerprint: Optional[str],
        since: datetime,
    ) -> Dict[str, int]:
        """Failed-attempt counts per email sharing the IP or the fingerprint."""
        sources = []
        if ip:
            sources.append({"location.ip": ip})
        if fingerprint:
            sources.append({"device_fingerprint": fingerprint})
        if not sources:
            return {}
        query = {"$or": sources, "success": False, "created_at": {"$gte": since}}
        return await self._store.group_count(self.collection, "email", query)

    async def mark_suspicious(self, attempt_id: str, reasons: List[SuspiciousReason]) -> LoginAttempt:
        """Flag an attempt as suspicious and re-score it."""
        attempt = await self.require(attempt_id)
        assessment = self._scorer.score(
            attempt.model_copy(update={"is_suspicious": True, "suspicious_reasons": reasons})
        )
        return await self._update_by_id(
            attempt_id,
            {
                "$set": {
                    "is_suspicious": True,
                    "suspicious_reasons": [r.model_dump(mode="python") for r in reasons],
                    "risk_score": assessment.score,
                    "risk_factors": [f.model_dump(mode="python") for f in assessment.factors],
                }
            },
        )

    async def mark_reviewed(self, attempt_id: str, reviewer_id: str, notes: str = "") -> LoginAttempt:
        return await self._update_by_id(
            attempt_id,
            {
                "$set": {
                    "reviewed": True,
                    "reviewed_by": reviewer_id,
                    "reviewed_at": utc_now(),
                    "review_notes": notes,
                }
            },
        )

    async def flag_pattern(self, query: Dict[str, Any], pattern_type: PatternType) -> int:
        """Mark matching attempts as part of a pattern and re-score them.

        Returns:
            Number of attempts newly flagged
        """
        query = {**query, "is_part_of_pattern": False}
        flagged = 0
        for document in await self._store.find(self.collection, query):
            attempt = self._validate(document).model_copy(
                update={"is_part_of_pattern": True, "pattern_type": pattern_type}
            )
            assessment = self._scorer.score(attempt)
            updated = await self._store.find_one_and_update(
                self.collection,
                {"id": attempt.id, "is_part_of_pattern": False},
                {
                    "$set": {
                        "is_part_of_pattern": True,
                        "pattern_type": pattern_type,
                        "risk_score": assessment.score,
                        "risk_factors": [f.model_dump(mode="python") for f in assessment.factors],
                    }
                },
            )
            if updated is not None:
                flagged += 1
        return flagged

    async def statistics(self, window_hours: int = 24, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Totals, success rate, top failure reasons and top failing IPs."""
        since = (now or utc_now()) - timedelta(hours=window_hours)
        in_window = {"created_at": {"$gte": since}}

        total = await self._store.count_documents(self.collection, in_window)
        successful = await self._store.count_documents(self.collection, {**in_window, "success": True})
        failed = await self._store.count_documents(self.collection, {**in_window, "success": False})
        suspicious = await self._store.count_documents(self.collection, {**in_window, "is_suspicious": True})
        patterns = await self._store.count_documents(self.collection, {**in_window, "is_part_of_pattern": True})

        reasons = await self._store.group_count(
            self.collection,
            "failure_reason",
            {**in_window, "success": False, "failure_reason": {"$ne": None}},
        )
        ips = await self._store.group_count(
            self.collection,
            "location.ip",
            {**in_window, "success": False},
        )
        top_n = StorageConstants.STATISTICS_TOP_N

        return {
            "total": total,
            "successful": successful,
            "failed": failed,
            "suspicious": suspicious,
            "patterns": patterns,
            "success_rate": round(successful / total * 100, 2) if total else 0.0,
            "failure_reasons": [
                {"reason": r, "count": c}
                for r, c in sorted(reasons.items(), key=lambda kv: kv[1], reverse=True)[:top_n]
            ],
            "top_failed_ips": [
                {"ip": ip, "attempts": c}
                for ip, c in sorted(ips.items(), key=lambda kv: kv[1], reverse=True)[:top_n]
            ],
        }

    async def hourly_trends(self, hours: int = 24, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Attempt counts grouped by UTC hour of day and outcome."""
        since = (now or utc_now()) - timedelta(hours=hours)
        docs = await self._store.find(self.collection, {"created_at": {"$gte": since}})
        counts: Counter = Counter((doc["created_at"].hour, doc["success"]) for doc in docs)
        return [
            {"hour": hour, "success": success, "count": count}
            for (hour, success), count in sorted(counts.items())
        ]

    async def purge_expired(
        self,
        retention_days: int = RetentionConstants.LOGIN_ATTEMPT_DAYS,
        now: Optional[datetime] = None,
    ) -> int:
        """Delete attempts older than the retention window."""
        cutoff = (now or utc_now()) - timedelta(days=retention_days)
        deleted = await self._store.delete_many(self.collection, {"created_at": {"$lt": cutoff}})
        logger.info("Expired login attempts purged", extra={"deleted": deleted})
        return deleted
