"""Session repository - issued credentials and their lifecycle."""

import hashlib
import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from loginshield.common.constants import RetentionConstants, SessionConstants, StorageConstants
from loginshield.core.types import LoginMethod, RevokeReason, SessionSuspicion
from loginshield.data.schemas.common import Location, utc_now
from loginshield.data.schemas.session import Session
from loginshield.repositories.base import Repository, to_document

logger = logging.getLogger(__name__)


def hash_token(token: str) -> str:
    """SHA-256 hex digest of a raw session token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class SessionRepository(Repository[Session]):
    """Persistence for sessions. Raw tokens never reach the store."""

    collection = "sessions"
    model = Session

    async def create(
        self,
        user_id: str,
        token: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        device_info: Optional[Dict[str, Any]] = None,
        location: Optional[Location] = None,
        login_method: LoginMethod = LoginMethod.PASSWORD,
        expires_in: timedelta = timedelta(hours=SessionConstants.DEFAULT_SESSION_HOURS),
        now: Optional[datetime] = None,
    ) -> Session:
        now = now or utc_now()
        session = Session(
            user_id=user_id,
            token_hash=hash_token(token),
            ip_address=ip_address,
            user_agent=user_agent,
            device_info=device_info or {},
            location=location or Location(ip=ip_address),
            login_method=login_method,
            last_activity=now,
            expires_at=now + expires_in,
            created_at=now,
            updated_at=now,
        )
        document = await self._store.insert_one(self.collection, to_document(session))
        logger.info("Session created", extra={"session_id": session.id, "user_id": user_id})
        return self._validate(document)

    async def find_by_token(self, token: str) -> Optional[Session]:
        return self._parse(await self._store.find_one(self.collection, {"token_hash": hash_token(token)}))

    async def get_active_sessions(
        self,
        user_id: str,
        now: Optional[datetime] = None,
        newest_first_by: str = "last_activity",
    ) -> List[Session]:
        """Active, unexpired sessions of a user, newest first."""
        docs = await self._store.find(
            self.collection,
            {"user_id": user_id, "is_active": True, "expires_at": {"$gt": now or utc_now()}},
            sort=[(newest_first_by, -1)],
        )
        return self._parse_many(docs)

    async def get_user_sessions(
        self,
        user_id: str,
        include_revoked: bool = False,
        limit: int = StorageConstants.DEFAULT_QUERY_LIMIT,
    ) -> List[Session]:
        query: Dict[str, Any] = {"user_id": user_id}
        if not include_revoked:
            query["revoked_at"] = None
        docs = await self._store.find(self.collection, query, sort=[("created_at", -1)], limit=limit)
        return self._parse_many(docs)

    async def get_suspicious_sessions(self, limit: int = StorageConstants.DEFAULT_QUERY_LIMIT) -> List[Session]:
        docs = await self._store.find(
            self.collection,
            {"is_suspicious": True, "is_active": True},
            sort=[("created_at", -1)],
            limit=limit,
        )
        return [s for s in self._parse_many(docs) if s.suspicious_reasons]

    async def update_activity(self, token: str, now: Optional[datetime] = None) -> Optional[Session]:
        """Touch an active session. Returns None for unknown or inactive tokens."""
        now = now or utc_now()
        document = await self._store.find_one_and_update(
            self.collection,
            {"token_hash": hash_token(token), "is_active": True},
            {"$set": {"last_activity": now, "updated_at": now}, "$inc": {"activity_count": 1}},
        )
        return self._parse(document)

    def _revocation(
        self,
        revoked_by: Optional[str],
        reason: RevokeReason,
        now: Optional[datetime],
    ) -> Dict[str, Any]:
        now = now or utc_now()
        return {
            "$set": {
                "is_active": False,
                "revoked_at": now,
                "revoked_by": revoked_by,
                "revoke_reason": reason,
                "updated_at": now,
            }
        }

    async def revoke(
        self,
        session_id: str,
        revoked_by: Optional[str] = None,
        reason: RevokeReason = RevokeReason.USER_LOGOUT,
        now: Optional[datetime] = None,
    ) -> Session:
        session = await self._update_by_id(session_id, self._revocation(revoked_by, reason, now))
        logger.info("Session revoked", extra={"session_id": session_id, "reason": reason.value})
        return session

    async def revoke_all_except_current(
        self,
        user_id: str,
        current_session_id: str,
        revoked_by: Optional[str] = None,
        reason: RevokeReason = RevokeReason.USER_LOGOUT,
        now: Optional[datetime] = None,
    ) -> int:
        return await self._store.update_many(
            self.collection,
            {"user_id": user_id, "id": {"$ne": current_session_id}, "is_active": True},
            self._revocation(revoked_by, reason, now),
        )

    async def revoke_all(
        self,
        user_id: str,
        revoked_by: Optional[str] = None,
        reason: RevokeReason = RevokeReason.FORCED_LOGOUT,
        now: Optional[datetime] = None,
    ) -> int:
        revoked = await self._store.update_many(
            self.collection,
            {"user_id": user_id, "is_active": True},
            self._revocation(revoked_by, reason, now),
        )
        logger.info("All user sessions revoked", extra={"user_id": user_id, "revoked": revoked})
        return revoked

    async def mark_suspicious(self, session_id: str, reasons: List[SessionSuspicion]) -> Session:
        return await self._update_by_id(
            session_id,
            {
                "$set": {"is_suspicious": True},
                "$addToSet": {"suspicious_reasons": {"$each": list(reasons)}},
            },
        )

    async def statistics(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        user_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Session counts by state, login method, device, user and day."""
        now = now or utc_now()
        query: Dict[str, Any] = {}
        created: Dict[str, Any] = {}
        if start is not None:
            created["$gte"] = start
        if end is not None:
            created["$lte"] = end
        if created:
            query["created_at"] = created
        if user_id is not None:
            query["user_id"] = user_id

        sessions = self._parse_many(await self._store.find(self.collection, query))
        by_method = Counter(s.login_method.value for s in sessions)
        by_device = Counter(s.device_info.get("device", {}).get("type") for s in sessions)
        by_user = Counter(s.user_id for s in sessions)
        timeline = Counter(s.created_at.strftime("%Y-%m-%d") for s in sessions)

        return {
            "total": len(sessions),
            "active": sum(1 for s in sessions if s.is_active and s.expires_at > now),
            "revoked": sum(1 for s in sessions if s.revoked_at is not None),
            "expired": sum(1 for s in sessions if s.expires_at <= now and s.revoked_at is None),
            "suspicious": sum(1 for s in sessions if s.is_suspicious),
            "by_login_method": [{"method": m, "count": c} for m, c in by_method.most_common()],
            "by_device": [{"device": d, "count": c} for d, c in by_device.most_common()],
            "top_users": [
                {"user_id": u, "count": c}
                for u, c in by_user.most_common(StorageConstants.STATISTICS_TOP_N)
            ],
            "timeline": [{"date": d, "count": timeline[d]} for d in sorted(timeline)][-30:],
        }

    async def cleanup(
        self,
        days_old: int = RetentionConstants.SESSION_DAYS,
        now: Optional[datetime] = None,
    ) -> int:
        """Delete sessions expired or revoked more than ``days_old`` days ago."""
        cutoff = (now or utc_now()) - timedelta(days=days_old)
        deleted = await self._store.delete_many(
            self.collection,
            {"$or": [{"expires_at": {"$lt": cutoff}}, {"revoked_at": {"$lt": cutoff}}]},
        )
        logger.info("Old sessions removed", extra={"deleted": deleted})
        return deleted
