"""Session Anomaly Detector - diagnostics over a user's live sessions.

Reports anomalies only. Callers decide whether to log, alert or force
re-authentication.
"""

import logging
from datetime import datetime
from typing import List, Optional

from loginshield.agents.session.schema import SessionAnomaly, SessionRef
from loginshield.common.config.policy import SessionPolicy
from loginshield.core.types import AnomalyType
from loginshield.data.schemas.common import utc_now
from loginshield.data.schemas.session import Session
from loginshield.repositories.sessions import SessionRepository

logger = logging.getLogger(__name__)


def _ref(session: Session) -> SessionRef:
    return SessionRef(
        session_id=session.id,
        ip_address=session.ip_address,
        country=session.location.country,
    )


class SessionAnomalyDetector:
    """Session Anomaly Detector.

    Responsibilities:
    - Flag more distinct IPs than allowed across active sessions
    - Flag impossible travel between consecutive sessions
    - Flag excess concurrent sessions

    Constraints:
    - Read-only
    """

    def __init__(self, sessions: SessionRepository, policy: Optional[SessionPolicy] = None):
        self._sessions = sessions
        self._policy = policy or SessionPolicy()

    async def detect(self, user_id: str, now: Optional[datetime] = None) -> List[SessionAnomaly]:
        """Inspect the active, unexpired sessions of a user.

        Args:
            user_id: User whose sessions are inspected
            now: Reference time for expiry, defaults to the current UTC time

        Returns:
            Detected anomalies, possibly empty
        """
        sessions = await self._sessions.get_active_sessions(
            user_id, now=now or utc_now(), newest_first_by="created_at"
        )
        anomalies: List[SessionAnomaly] = []

        multiple_ips = self._multiple_ips(sessions)
        if multiple_ips is not None:
            anomalies.append(multiple_ips)
        anomalies.extend(self._impossible_travel(sessions))

        if len(sessions) > self._policy.max_concurrent_sessions:
            anomalies.append(
                SessionAnomaly(
                    type=AnomalyType.MULTIPLE_CONCURRENT_SESSIONS,
                    description=f"{len(sessions)} concurrent active sessions",
                    count=len(sessions),
                )
            )

        if anomalies:
            logger.warning(
                "Session anomalies detected",
                extra={"user_id": user_id, "anomalies": [a.type.value for a in anomalies]},
            )
        return anomalies

    def _multiple_ips(self, sessions: List[Session]) -> Optional[SessionAnomaly]:
        distinct = {s.ip_address for s in sessions if s.ip_address}
        if len(distinct) <= self._policy.max_distinct_ips:
            return None
        return SessionAnomaly(
            type=AnomalyType.MULTIPLE_IPS,
            description=f"Active sessions from {len(distinct)} different IP addresses",
            sessions=[_ref(s) for s in sessions],
            count=len(distinct),
        )

    def _impossible_travel(self, sessions: List[Session]) -> List[SessionAnomaly]:
        anomalies = []
        for newer, older in zip(sessions, sessions[1:]):
            newer_country = newer.location.country
            older_country = older.location.country
            if not newer_country or not older_country or newer_country == older_country:
                continue
            gap_hours = abs((newer.created_at - older.created_at).total_seconds()) / 3600
            if gap_hours < self._policy.impossible_travel_hours:
                anomalies.append(
                    SessionAnomaly(
                        type=AnomalyType.IMPOSSIBLE_TRAVEL,
                        description=(
                            f"Sessions from {older_country} and {newer_country} "
                            f"{gap_hours:.1f} hours apart"
                        ),
                        sessions=[_ref(older), _ref(newer)],
                    )
                )
        return anomalies
