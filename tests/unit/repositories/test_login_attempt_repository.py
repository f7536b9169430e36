"""Tests for the login attempt repository."""

from datetime import timedelta

import pytest

from loginshield.agents.risk import AttemptRiskScorer
from loginshield.core.types import FailureReason
from loginshield.data.schemas.common import Location
from loginshield.data.schemas.login_attempt import LoginAttempt, SuspiciousReason
from loginshield.repositories.login_attempts import LoginAttemptRepository
from loginshield.storage.memory import InMemoryDocumentStore


def _attempt(now, success=False, email="Driver@Example.com", ip="203.0.113.7", **fields):
    return LoginAttempt(
        email=email,
        success=success,
        location=Location(ip=ip),
        created_at=now,
        **fields,
    )


class TestLoginAttemptRepository:
    """Append, query and statistics."""

    @pytest.fixture
    def repo(self):
        return LoginAttemptRepository(InMemoryDocumentStore(), AttemptRiskScorer())

    @pytest.mark.asyncio
    async def test_attempt_scored_on_insert(self, repo, now):
        stored = await repo.record_attempt(
            _attempt(now, failure_reason=FailureReason.GEO_RESTRICTION, device_fingerprint="fp")
        )
        assert stored.email == "driver@example.com"
        assert stored.risk_score == 45
        assert [f.factor for f in stored.risk_factors] == ["failed_attempt", "high_risk_failure"]

    @pytest.mark.asyncio
    async def test_queries_by_email_and_ip(self, repo, now):
        await repo.record_attempt(_attempt(now))
        await repo.record_attempt(_attempt(now - timedelta(hours=30)))
        await repo.record_attempt(_attempt(now, email="other@example.com", ip="198.51.100.1", success=True))

        by_email = await repo.get_attempts_by_email("DRIVER@example.com", now=now)
        assert len(by_email) == 1
        by_ip = await repo.get_attempts_by_ip("198.51.100.1", now=now)
        assert [a.email for a in by_ip] == ["other@example.com"]

    @pytest.mark.asyncio
    async def test_user_attempts_newest_first(self, repo, now):
        older = await repo.record_attempt(_attempt(now - timedelta(minutes=5), user_id="u1"))
        newer = await repo.record_attempt(_attempt(now, user_id="u1", success=True))

        attempts = await repo.get_user_attempts("u1")
        assert [a.id for a in attempts] == [newer.id, older.id]
        assert [a.id for a in await repo.get_user_attempts("u1", success=False)] == [older.id]

    @pytest.mark.asyncio
    async def test_mark_suspicious_rescores(self, repo, now):
        stored = await repo.record_attempt(_attempt(now, device_fingerprint="fp"))
        assert stored.risk_score == 20

        marked = await repo.mark_suspicious(stored.id, [SuspiciousReason(reason="Odd hour")])
        assert marked.is_suspicious is True
        assert marked.risk_score == 50
        assert marked.suspicious_reasons[0].reason == "Odd hour"

    @pytest.mark.asyncio
    async def test_mark_reviewed(self, repo, now):
        stored = await repo.record_attempt(_attempt(now))
        reviewed = await repo.mark_reviewed(stored.id, "analyst_1", "false positive")
        assert reviewed.reviewed is True
        assert reviewed.reviewed_by == "analyst_1"
        assert reviewed.review_notes == "false positive"

    @pytest.mark.asyncio
    async def test_statistics(self, repo, now):
        await repo.record_attempt(_attempt(now, failure_reason=FailureReason.INVALID_CREDENTIALS))
        await repo.record_attempt(_attempt(now, failure_reason=FailureReason.INVALID_CREDENTIALS))
        await repo.record_attempt(_attempt(now, ip="198.51.100.1", failure_reason=FailureReason.RATE_LIMITED))
        await repo.record_attempt(_attempt(now, success=True))

        stats = await repo.statistics(now=now)
        assert stats["total"] == 4
        assert stats["successful"] == 1
        assert stats["failed"] == 3
        assert stats["success_rate"] == 25.0
        assert stats["failure_reasons"][0] == {"reason": "invalid_credentials", "count": 2}
        assert stats["top_failed_ips"][0] == {"ip": "203.0.113.7", "attempts": 2}

    @pytest.mark.asyncio
    async def test_hourly_trends(self, repo, now):
        await repo.record_attempt(_attempt(now))
        await repo.record_attempt(_attempt(now, success=True))
        await repo.record_attempt(_attempt(now - timedelta(hours=1), success=True))

        trends = await repo.hourly_trends(now=now)
        assert {"hour": 15, "success": False, "count": 1} in trends
        assert {"hour": 14, "success": True, "count": 1} in trends

    @pytest.mark.asyncio
    async def test_purge_expired(self, repo, now):
        await repo.record_attempt(_attempt(now - timedelta(days=91)))
        await repo.record_attempt(_attempt(now))
        assert await repo.purge_expired(retention_days=90, now=now) == 1
        assert len(await repo.get_attempts_by_email("driver@example.com", window_minutes=10**6, now=now)) == 1
