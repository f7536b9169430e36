"""End-to-end tests for the login security pipeline.

Tests the full flow:
LoginRequest -> fingerprint -> access rules -> device state -> LoginDecision
"""

import asyncio
import fcntl
import time
from datetime import timedelta

import pytest

from loginshield.common.config.settings import AlertSinkType, Config
from loginshield.common.exceptions import AlertDeliveryError, ConfigurationError, StorageError
from loginshield.core.types import (
    ChallengeType,
    DecisionReason,
    DecisionStatus,
    FailureReason,
    TrustLevel,
    VerificationMethod,
)
from loginshield.data.schemas.common import Location
from loginshield.governance.alerts.sink import AlertSink, FileAlertSink
from loginshield.maintenance import run_retention_cleanup
from loginshield.orchestration import LoginShieldEngine, build_store, create_engine
from loginshield.storage.memory import InMemoryDocumentStore
from loginshield.storage.timeout import TimeoutDocumentStore

SAFARI_IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


class TrustScoreOutageStore(InMemoryDocumentStore):
    """Fails every update that writes a trust score."""

    async def find_one_and_update(self, collection, query, update, upsert=False, return_new=True, sort=None):
        if "trust_score" in update.get("$set", {}):
            raise StorageError("primary unavailable", collection=collection, operation="find_one_and_update")
        return await super().find_one_and_update(collection, query, update, upsert, return_new, sort)


class TotalOutageStore(InMemoryDocumentStore):
    """Fails every read and write."""

    async def find(self, collection, query=None, sort=None, limit=None):
        raise StorageError("store down", collection=collection, operation="find")

    async def insert_one(self, collection, document):
        raise StorageError("store down", collection=collection, operation="insert_one")


class FailingAlertSink(AlertSink):
    def emit(self, alert):
        raise AlertDeliveryError("disk full")


async def _attempts(engine, user_id="user_001"):
    return await engine.attempts.get_user_attempts(user_id)


class TestAllowedLogins:
    """Logins that pass every check."""

    @pytest.mark.asyncio
    async def test_first_login_from_new_device(self, engine, make_login, now):
        """A first device is allowed and recorded."""
        decision = await engine.orchestrator.evaluate(make_login(), now=now)

        assert decision.status == DecisionStatus.ALLOWED
        assert decision.allowed is True
        assert decision.reason is None
        assert decision.trust_score == 20
        assert decision.device.login_count == 1
        assert decision.device.first_seen == now
        assert decision.location.country == "US"
        assert decision.location.ip == "203.0.113.7"
        assert decision.fingerprint.browser.name == "Chrome"

        attempts = await _attempts(engine)
        assert len(attempts) == 1
        assert attempts[0].success is True
        assert attempts[0].token_issued is True
        assert attempts[0].device_fingerprint == decision.fingerprint.fingerprint
        assert attempts[0].request_headers.accept_language == "en-US,en;q=0.9"

    @pytest.mark.asyncio
    async def test_returning_device_gains_trust(self, engine, make_login, now):
        """Each successful login adds to the device's trust."""
        first = await engine.orchestrator.evaluate(make_login(), now=now)
        second = await engine.orchestrator.evaluate(make_login(ip="198.51.100.9"), now=now + timedelta(hours=1))

        assert second.device.id == first.device.id
        assert second.trust_score == 22
        assert second.device.login_count == 2

        stored = await engine.devices.require(first.device.id)
        assert stored.trust_score == 22
        assert stored.last_location.ip == "198.51.100.9"

    @pytest.mark.asyncio
    async def test_device_promoted_after_enough_logins(self, engine, make_login, now):
        for i in range(6):
            decision = await engine.orchestrator.evaluate(make_login(), now=now + timedelta(minutes=i))
        assert decision.device.trust_level == TrustLevel.TRUSTED

    @pytest.mark.asyncio
    async def test_explicit_location_wins(self, engine, make_login, now):
        location = Location(country="CA", region="ON", city="Toronto", latitude=43.65, longitude=-79.38)
        decision = await engine.orchestrator.evaluate(make_login(location=location), now=now)
        assert decision.location.country == "CA"
        assert decision.location.ip == "203.0.113.7"

    @pytest.mark.asyncio
    async def test_unknown_location_defaults(self, engine, make_login, now):
        decision = await engine.orchestrator.evaluate(make_login(country=None), now=now)
        assert decision.location.country == "Unknown"
        assert decision.location.city == "Unknown"
        assert decision.location.timezone == "America/New_York"


class TestDeniedLogins:
    """Hard denials."""

    @pytest.mark.asyncio
    async def test_geo_deny(self, engine, make_login, now):
        """A deny rule stops the login before any device work."""
        await engine.rules.create(
            {
                "name": "Block US",
                "kind": "deny",
                "priority": 100,
                "conditions": {"countries": ["US"]},
                "deny_message": "Logins from the US are closed",
            }
        )

        decision = await engine.orchestrator.evaluate(make_login(), now=now)

        assert decision.status == DecisionStatus.DENIED
        assert decision.allowed is False
        assert decision.reason == DecisionReason.GEO_RESTRICTION
        assert decision.message == "Logins from the US are closed"
        assert decision.geo_evaluation.allowed is False
        assert await engine.devices.get_user_devices("user_001") == []

        attempts = await _attempts(engine)
        assert attempts[0].failure_reason == FailureReason.GEO_RESTRICTION
        assert attempts[0].risk_score == 45

    @pytest.mark.asyncio
    async def test_blocked_device(self, engine, make_login, now):
        """A blocked device is refused and its failure counted."""
        first = await engine.orchestrator.evaluate(make_login(), now=now)
        await engine.devices.block(first.device.id, reason="Reported stolen")

        decision = await engine.orchestrator.evaluate(make_login(), now=now + timedelta(minutes=1))

        assert decision.status == DecisionStatus.DENIED
        assert decision.reason == DecisionReason.DEVICE_BLOCKED
        assert decision.message == "Reported stolen"

        attempts = await _attempts(engine)
        assert attempts[0].failure_reason == FailureReason.DEVICE_NOT_TRUSTED
        assert (await engine.devices.require(first.device.id)).failed_attempts == 1

    @pytest.mark.asyncio
    async def test_repeated_failures_block_device(self, engine, make_login, now):
        """Handler-reported failures eventually auto-block the device."""
        login = make_login()
        first = await engine.orchestrator.evaluate(login, now=now)
        record = engine.fingerprints.generate(login.request, login.client)

        for i in range(10):
            await engine.orchestrator.record_failed_attempt(
                login, FailureReason.INVALID_CREDENTIALS, record=record, now=now + timedelta(minutes=i)
            )

        decision = await engine.orchestrator.evaluate(login, now=now + timedelta(minutes=11))
        assert decision.reason == DecisionReason.DEVICE_BLOCKED
        assert decision.message == "Too many failed login attempts"
        assert decision.device.id == first.device.id


class TestPendingLogins:
    """Soft gates."""

    @pytest.mark.asyncio
    async def test_two_factor_required(self, engine, make_login, now):
        await engine.rules.create(
            {
                "name": "2FA US",
                "kind": "require_2fa",
                "conditions": {"countries": ["US"]},
                "custom_message": "Confirm with your authenticator",
            }
        )

        decision = await engine.orchestrator.evaluate(make_login(), now=now)

        assert decision.status == DecisionStatus.PENDING_2FA
        assert decision.allowed is True
        assert decision.requires_2fa is True
        assert decision.reason == DecisionReason.GEO_REQUIRES_2FA
        assert decision.message == "Confirm with your authenticator"
        assert await _attempts(engine) == []

    @pytest.mark.asyncio
    async def test_two_factor_already_verified(self, engine, make_login, now):
        await engine.rules.create({"name": "2FA US", "kind": "require_2fa", "conditions": {"countries": ["US"]}})

        decision = await engine.orchestrator.evaluate(make_login(two_factor_verified=True), now=now)
        assert decision.status == DecisionStatus.ALLOWED

    @pytest.mark.asyncio
    async def test_challenge(self, engine, make_login, now):
        await engine.rules.create(
            {
                "name": "Questions for US",
                "kind": "challenge",
                "conditions": {"countries": ["US"]},
                "challenge_type": "security_questions",
            }
        )

        decision = await engine.orchestrator.evaluate(make_login(two_factor_verified=True), now=now)

        assert decision.status == DecisionStatus.PENDING_CHALLENGE
        assert decision.requires_challenge is True
        assert decision.challenge_type == ChallengeType.SECURITY_QUESTIONS
        assert decision.message == "Additional verification required"

    @pytest.mark.asyncio
    async def test_new_device_class_needs_verification(self, engine, make_login, phone_client, now):
        """A phone after a desktop is held until the caller verifies it."""
        desktop = await engine.orchestrator.evaluate(make_login(), now=now)
        phone_login = make_login(user_agent=SAFARI_IPHONE_UA, client=phone_client)

        held = await engine.orchestrator.evaluate(phone_login, now=now + timedelta(hours=1))

        assert held.status == DecisionStatus.PENDING_VERIFICATION
        assert held.requires_verification is True
        assert held.reason == DecisionReason.DEVICE_CHANGED
        assert held.drift.major_changes == 4
        assert held.device.id != desktop.device.id
        assert held.device.fingerprint_history[-1].fingerprint == desktop.device.fingerprint
        assert held.device.is_suspicious is True

        await engine.orchestrator.complete_device_verification(
            held.device.id, VerificationMethod.SMS, now=now + timedelta(hours=1)
        )
        allowed = await engine.orchestrator.evaluate(phone_login, now=now + timedelta(hours=2))

        assert allowed.status == DecisionStatus.ALLOWED
        assert allowed.device.id == held.device.id
        assert allowed.device.is_verified is True

    @pytest.mark.asyncio
    async def test_same_device_class_is_not_held(self, engine, make_login, desktop_client, now):
        """A browser update on the same machine passes."""
        await engine.orchestrator.evaluate(make_login(), now=now)
        updated = desktop_client.model_copy(update={"canvas": "n3wc4nv45"})

        decision = await engine.orchestrator.evaluate(make_login(client=updated), now=now + timedelta(days=1))
        assert decision.status == DecisionStatus.ALLOWED


class TestAlerts:
    """Alert rules."""

    @pytest.mark.asyncio
    async def test_alert_emitted_on_allowed_login(self, engine, alert_sink, make_login, now):
        await engine.rules.create(
            {
                "name": "Watch US",
                "kind": "alert",
                "conditions": {"countries": ["US"]},
                "alert_emails": ["security@example.com"],
            }
        )

        decision = await engine.orchestrator.evaluate(make_login(), now=now)

        assert decision.status == DecisionStatus.ALLOWED
        assert len(alert_sink.alerts) == 1
        alert = alert_sink.alerts[0]
        assert alert.user_id == "user_001"
        assert alert.device_id == decision.device.id
        assert alert.recipients == ["security@example.com"]
        assert alert.matched_rules[0]["name"] == "Watch US"

    @pytest.mark.asyncio
    async def test_alert_failure_does_not_block_login(self, store, policy, make_login, now):
        engine = LoginShieldEngine(store, policy, FailingAlertSink())
        await engine.rules.create({"name": "Watch US", "kind": "alert", "conditions": {"countries": ["US"]}})

        decision = await engine.orchestrator.evaluate(make_login(), now=now)
        assert decision.status == DecisionStatus.ALLOWED
        assert decision.security_checks_failed is False

    @pytest.mark.asyncio
    async def test_locked_alert_log_does_not_stall_logins(self, store, policy, make_login, now, tmp_path):
        """A writer holding the alert file lock delays the alert, not the event loop."""
        sink = FileAlertSink(log_dir=tmp_path)
        engine = LoginShieldEngine(store, policy, sink, alert_timeout_seconds=0.2)
        await engine.rules.create({"name": "Watch US", "kind": "alert", "conditions": {"countries": ["US"]}})

        ticks = []

        async def heartbeat():
            while True:
                ticks.append(time.monotonic())
                await asyncio.sleep(0.02)

        with open(sink._log_path(), "a") as held:
            fcntl.flock(held.fileno(), fcntl.LOCK_EX)
            beat = asyncio.create_task(heartbeat())
            try:
                started = time.monotonic()
                decision = await engine.orchestrator.evaluate(make_login(), now=now)
                elapsed = time.monotonic() - started
            finally:
                beat.cancel()
                fcntl.flock(held.fileno(), fcntl.LOCK_UN)

        assert decision.status == DecisionStatus.ALLOWED
        assert decision.fallback_mode is False
        assert elapsed < 1.0
        assert len(ticks) >= 5

        for _ in range(100):
            if list(sink.get_alerts()):
                break
            await asyncio.sleep(0.02)
        assert len(list(sink.get_alerts())) == 1


class TestFailOpen:
    """Infrastructure failures."""

    @pytest.mark.asyncio
    async def test_store_failure_allows_in_fallback_mode(self, policy, alert_sink, make_login, now):
        engine = LoginShieldEngine(TrustScoreOutageStore(), policy, alert_sink)

        decision = await engine.orchestrator.evaluate(make_login(), now=now)

        assert decision.allowed is True
        assert decision.status == DecisionStatus.ALLOWED
        assert decision.reason == DecisionReason.SECURITY_CHECKS_FAILED
        assert decision.security_checks_failed is True
        assert decision.fallback_mode is True
        assert "primary unavailable" in decision.error

        attempts = await _attempts(engine)
        assert len(attempts) == 1
        assert attempts[0].failure_reason == FailureReason.OTHER
        assert attempts[0].metadata["stage"] == "trust_score"
        assert attempts[0].metadata["error_type"] == "StorageError"

    @pytest.mark.asyncio
    async def test_total_outage_still_decides(self, policy, alert_sink, make_login, now):
        engine = LoginShieldEngine(TotalOutageStore(), policy, alert_sink)

        decision = await engine.orchestrator.evaluate(make_login(), now=now)

        assert decision.fallback_mode is True
        assert decision.allowed is True

    @pytest.mark.asyncio
    async def test_run_exposes_the_fault(self, policy, alert_sink, make_login, now):
        engine = LoginShieldEngine(TotalOutageStore(), policy, alert_sink)

        result = await engine.orchestrator.run(make_login(), now=now)

        assert result.is_fault is True
        assert result.decision is None
        assert result.fault.stage == "geo_rules"
        assert result.resolve().fallback_mode is True


class TestAttackChecks:
    """Pattern checks exposed to the login handler."""

    @pytest.mark.asyncio
    async def test_brute_force_after_failed_logins(self, engine, make_login, now):
        login = make_login()
        for i in range(5):
            await engine.orchestrator.record_failed_attempt(
                login, FailureReason.INVALID_CREDENTIALS, now=now - timedelta(minutes=i)
            )

        result = await engine.orchestrator.check_brute_force("driver@example.com", now=now)
        assert result.is_brute_force is True

        attempts = await _attempts(engine)
        assert all(a.location.country == "Unknown" for a in attempts)

    @pytest.mark.asyncio
    async def test_credential_stuffing_from_one_ip(self, engine, make_login, now):
        for i in range(10):
            login = make_login(user_id=f"user_{i}", email=f"user{i}@example.com")
            await engine.orchestrator.record_failed_attempt(login, FailureReason.INVALID_CREDENTIALS, now=now)

        result = await engine.orchestrator.check_credential_stuffing("203.0.113.7", now=now)
        assert result.is_credential_stuffing is True
        assert result.unique_accounts == 10


class TestEngineWiring:
    """Factory and maintenance."""

    def test_create_engine_wraps_store(self, tmp_path):
        config = Config(alert_sink_type=AlertSinkType.FILE, alert_log_dir=tmp_path)
        engine = create_engine(config=config)

        assert isinstance(engine.store, TimeoutDocumentStore)
        assert engine.policy.brute_force.threshold == 5
        assert engine.orchestrator.alert_timeout_seconds == config.store_timeout_seconds

    def test_store_factory_from_config(self):
        config = Config(store_factory="loginshield.storage.memory:InMemoryDocumentStore")
        assert isinstance(build_store(config), InMemoryDocumentStore)
        assert isinstance(create_engine(config=config).store.inner, InMemoryDocumentStore)

    @pytest.mark.parametrize("factory", ["no_such_module:make", "loginshield.storage.memory:missing"])
    def test_unloadable_store_factory(self, factory):
        with pytest.raises(ConfigurationError, match="cannot be loaded"):
            build_store(Config(store_factory=factory))

    def test_store_factory_must_return_a_store(self):
        with pytest.raises(ConfigurationError, match="did not return a DocumentStore"):
            build_store(Config(store_factory="collections:OrderedDict"))

    @pytest.mark.asyncio
    async def test_retention_cleanup(self, engine, make_login, now):
        await engine.orchestrator.evaluate(make_login(), now=now - timedelta(days=120))
        await engine.sessions.create("user_001", "tok", now=now - timedelta(days=60))
        await engine.orchestrator.evaluate(make_login(user_id="user_002"), now=now)

        deleted = await run_retention_cleanup(
            engine.attempts, engine.devices, engine.sessions, engine.policy.retention, now=now
        )

        assert deleted == {"login_attempts": 1, "trusted_devices": 1, "sessions": 1}
