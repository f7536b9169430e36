"""Tests for attempt risk scoring and attack pattern detection."""

from datetime import timedelta

import pytest

from loginshield.agents.risk import AttemptRiskScorer, PatternDetector
from loginshield.common.config.policy import RiskScoringPolicy
from loginshield.core.types import FailureReason, PatternType
from loginshield.data.schemas.common import Location
from loginshield.data.schemas.login_attempt import LoginAttempt
from loginshield.repositories.login_attempts import LoginAttemptRepository
from loginshield.storage.memory import InMemoryDocumentStore


def _attempt(now, email="victim@example.com", ip="203.0.113.7", success=False, **fields):
    fields.setdefault("device_fingerprint", "fp-1")
    return LoginAttempt(email=email, success=success, location=Location(ip=ip), created_at=now, **fields)


class TestAttemptRiskScorer:
    """Additive per-attempt score."""

    @pytest.fixture
    def scorer(self):
        return AttemptRiskScorer()

    def test_clean_success_scores_zero(self, scorer, now):
        assessment = scorer.score(_attempt(now, success=True))
        assert assessment.score == 0
        assert assessment.factors == []

    def test_unknown_device(self, scorer, now):
        assessment = scorer.score(_attempt(now, success=True, device_fingerprint=None))
        assert assessment.score == 10
        assert assessment.factors[0].factor == "unknown_device"

    def test_low_risk_failure(self, scorer, now):
        assessment = scorer.score(_attempt(now, failure_reason=FailureReason.INVALID_CREDENTIALS))
        assert assessment.score == 20

    def test_everything_clamps_to_100(self, scorer, now):
        attempt = _attempt(
            now,
            device_fingerprint=None,
            failure_reason=FailureReason.SUSPICIOUS_ACTIVITY,
            is_suspicious=True,
            is_part_of_pattern=True,
            pattern_type=PatternType.BRUTE_FORCE,
        )
        assessment = scorer.score(attempt)
        # 20 + 30 + 10 + 25 + 30 = 115
        assert assessment.score == 100
        assert len(assessment.factors) == 5
        assert "brute_force" in assessment.factors[-1].description

    def test_weights_from_policy(self, now):
        scorer = AttemptRiskScorer(RiskScoringPolicy(failed_attempt=5, high_risk_failure_reasons=[]))
        assessment = scorer.score(_attempt(now, failure_reason=FailureReason.GEO_RESTRICTION))
        assert assessment.score == 5

    def test_apply_returns_scored_copy(self, scorer, now):
        attempt = _attempt(now)
        scored = scorer.apply(attempt)
        assert scored.risk_score == 20
        assert attempt.risk_score == 0


class TestPatternDetector:
    """Brute force and credential stuffing."""

    @pytest.fixture
    def attempts(self):
        return LoginAttemptRepository(InMemoryDocumentStore(), AttemptRiskScorer())

    @pytest.fixture
    def detector(self, attempts):
        return PatternDetector(attempts)

    @pytest.mark.asyncio
    async def test_brute_force_at_threshold(self, attempts, detector, now):
        for i in range(5):
            await attempts.record_attempt(_attempt(now - timedelta(minutes=i)))

        result = await detector.detect_brute_force("victim@example.com", now=now)
        assert result.is_brute_force is True
        assert result.count == 5
        assert result.window_minutes == 15
        assert result.threshold == 5

    @pytest.mark.asyncio
    async def test_brute_force_below_threshold(self, attempts, detector, now):
        for i in range(4):
            await attempts.record_attempt(_attempt(now - timedelta(minutes=i)))
        await attempts.record_attempt(_attempt(now, success=True))
        await attempts.record_attempt(_attempt(now - timedelta(minutes=20)))

        result = await detector.detect_brute_force("victim@example.com", now=now)
        assert result.is_brute_force is False
        assert result.count == 4

    @pytest.mark.asyncio
    async def test_brute_force_overrides(self, attempts, detector, now):
        for i in range(2):
            await attempts.record_attempt(_attempt(now - timedelta(minutes=i)))
        result = await detector.detect_brute_force("victim@example.com", window_minutes=5, threshold=2, now=now)
        assert result.is_brute_force is True

    @pytest.mark.asyncio
    async def test_credential_stuffing_counts_distinct_emails(self, attempts, detector, now):
        for i in range(10):
            await attempts.record_attempt(_attempt(now, email=f"user{i}@example.com"))
        await attempts.record_attempt(_attempt(now, email="user0@example.com"))

        result = await detector.detect_credential_stuffing("203.0.113.7", now=now)
        assert result.is_credential_stuffing is True
        assert result.unique_accounts == 10
        assert result.total_attempts == 11

    @pytest.mark.asyncio
    async def test_repeated_email_is_not_stuffing(self, attempts, detector, now):
        for _ in range(20):
            await attempts.record_attempt(_attempt(now))
        result = await detector.detect_credential_stuffing("203.0.113.7", now=now)
        assert result.is_credential_stuffing is False
        assert result.unique_accounts == 1
        assert result.total_attempts == 20

    @pytest.mark.asyncio
    async def test_stuffing_by_fingerprint(self, attempts, detector, now):
        for i in range(3):
            await attempts.record_attempt(
                _attempt(now, email=f"user{i}@example.com", ip=f"198.51.100.{i}", device_fingerprint="bot-fp")
            )
        result = await detector.detect_credential_stuffing(None, "bot-fp", threshold=3, now=now)
        assert result.is_credential_stuffing is True

    @pytest.mark.asyncio
    async def test_detection_never_raises(self, now):
        class BrokenAttempts(LoginAttemptRepository):
            async def count_failed_for_email(self, email, since):
                raise RuntimeError("store down")

            async def failed_emails_from_source(self, ip, fingerprint, since):
                raise RuntimeError("store down")

        detector = PatternDetector(BrokenAttempts(InMemoryDocumentStore(), AttemptRiskScorer()))

        brute = await detector.detect_brute_force("victim@example.com", now=now)
        stuffing = await detector.detect_credential_stuffing("203.0.113.7", now=now)
        assert brute.is_brute_force is False
        assert brute.count == 0
        assert stuffing.is_credential_stuffing is False

    @pytest.mark.asyncio
    async def test_flag_pattern_rescores_once(self, attempts, detector, now):
        for i in range(5):
            await attempts.record_attempt(_attempt(now - timedelta(minutes=i)))
        await attempts.record_attempt(_attempt(now, success=True))

        flagged = await detector.flag_pattern(PatternType.BRUTE_FORCE, email="victim@example.com", now=now)
        assert flagged == 5
        assert await detector.flag_pattern(PatternType.BRUTE_FORCE, email="victim@example.com", now=now) == 0

        failed = await attempts.get_attempts_by_email("victim@example.com", success=False, now=now)
        assert all(a.is_part_of_pattern for a in failed)
        assert all(a.pattern_type == PatternType.BRUTE_FORCE for a in failed)
        assert all(a.risk_score == 50 for a in failed)

    @pytest.mark.asyncio
    async def test_flag_pattern_needs_a_selector(self, detector, now):
        assert await detector.flag_pattern(PatternType.CREDENTIAL_STUFFING, now=now) == 0
