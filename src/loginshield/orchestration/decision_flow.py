"""Decision Flow - the per-login security pipeline.

The orchestrator is the only component that sees every other one. It
runs the login through fingerprinting, access rules and device state in
a fixed order; the first step that reaches a verdict ends the run.

Error handling:
- Hard denials and soft gates are decisions, not exceptions
- Any failure inside the pipeline becomes an EngineFault
- A fault resolves to the fail-open fallback decision after a
  best-effort failed attempt is recorded
"""

import asyncio
import importlib
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from loginshield.agents.fingerprint.agent import FingerprintAgent
from loginshield.agents.geo_rules.agent import GeoRuleEvaluator
from loginshield.agents.geo_rules.schema import GeoEvaluation
from loginshield.agents.risk.patterns import PatternDetector
from loginshield.agents.risk.schema import BruteForceResult, CredentialStuffingResult
from loginshield.agents.risk.scorer import AttemptRiskScorer
from loginshield.agents.session.agent import SessionAnomalyDetector
from loginshield.common.config.policy import SecurityPolicy, load_security_policy
from loginshield.common.config.settings import Config, get_config
from loginshield.common.constants import StorageConstants
from loginshield.common.exceptions import AlertDeliveryError, ConfigurationError
from loginshield.core.types import (
    DecisionReason,
    FailureReason,
    RuleKind,
    Severity,
    VerificationMethod,
)
from loginshield.data.schemas.common import Location, utc_now
from loginshield.data.schemas.fingerprint import FingerprintRecord
from loginshield.data.schemas.login_attempt import AttemptHeaders, LoginAttempt
from loginshield.data.schemas.trusted_device import TrustedDevice
from loginshield.governance.alerts.config import create_alert_sink
from loginshield.governance.alerts.schemas import SecurityAlert
from loginshield.governance.alerts.sink import AlertSink, LoggingAlertSink
from loginshield.orchestration.decision_context import (
    EngineFault,
    LoginDecision,
    LoginRequest,
    PipelineResult,
    fallback_location,
    resolve_location,
)
from loginshield.repositories.access_rules import AccessRuleRepository
from loginshield.repositories.login_attempts import LoginAttemptRepository
from loginshield.repositories.sessions import SessionRepository
from loginshield.repositories.trusted_devices import TrustedDeviceRepository
from loginshield.storage.base import DocumentStore
from loginshield.storage.memory import InMemoryDocumentStore
from loginshield.storage.timeout import TimeoutDocumentStore

logger = logging.getLogger(__name__)

DEVICE_BLOCKED_MESSAGE = "This device has been blocked"
DEVICE_CHANGED_MESSAGE = "Significant device changes detected. Additional verification required."
TWO_FACTOR_MESSAGE = "Two-factor authentication required from this location"
CHALLENGE_MESSAGE = "Additional verification required"


class LoginSecurityOrchestrator:
    """Orchestrates the login security decision.

    Lifecycle:
    1. Fingerprint the request
    2. Evaluate access rules (deny ends the run)
    3. Resolve or create the device
    4. Refuse blocked devices
    5. Hold high-drift devices for verification
    6. Hold for 2FA when a rule requires it
    7. Hold for a challenge when a rule asks for one
    8. Score and persist device trust
    9. Record the device success
    10. Record the successful attempt
    11. Raise the rule alert
    12. Allow

    Error Handling:
    - Every path produces a LoginDecision
    - Infrastructure failures fail open
    """

    def __init__(
        self,
        fingerprints: FingerprintAgent,
        geo_rules: GeoRuleEvaluator,
        devices: TrustedDeviceRepository,
        attempts: LoginAttemptRepository,
        patterns: PatternDetector,
        alert_sink: Optional[AlertSink] = None,
        alert_timeout_seconds: float = StorageConstants.DEFAULT_TIMEOUT_SECONDS,
    ):
        """Initialize the orchestrator.

        Args:
            fingerprints: Fingerprint agent
            geo_rules: Access rule evaluator
            devices: Trusted device repository
            attempts: Login attempt repository
            patterns: Brute-force and credential-stuffing detector
            alert_sink: Where rule alerts go. Logs when not provided.
            alert_timeout_seconds: Upper bound on one alert delivery
        """
        self.fingerprints = fingerprints
        self.geo_rules = geo_rules
        self.devices = devices
        self.attempts = attempts
        self.patterns = patterns
        self.alert_sink = alert_sink or LoggingAlertSink()
        self.alert_timeout_seconds = alert_timeout_seconds

    async def evaluate(self, login: LoginRequest, now: Optional[datetime] = None) -> LoginDecision:
        """Evaluate a login. Never raises.

        Args:
            login: Login request with an authenticated user
            now: Evaluation time, defaults to the current UTC time

        Returns:
            LoginDecision; the fallback decision on any engine fault
        """
        result = await self.run(login, now=now)
        if result.is_fault:
            fault = result.fault
            logger.error(
                "Login security checks failed, allowing in fallback mode",
                extra={
                    "user_id": login.user.user_id,
                    "stage": fault.stage,
                    "error_type": fault.error_type,
                    "error": fault.message,
                },
            )
            await self._record_fault(login, fault)
        return result.resolve()

    async def run(self, login: LoginRequest, now: Optional[datetime] = None) -> PipelineResult:
        """Run the pipeline, capturing any failure as an EngineFault."""
        state: Dict[str, str] = {"stage": "start"}
        try:
            decision = await self._pipeline(login, now or utc_now(), state)
        except Exception as e:
            return PipelineResult(fault=EngineFault.from_exception(state["stage"], e))
        return PipelineResult(decision=decision)

    async def _pipeline(self, login: LoginRequest, now: datetime, state: Dict[str, str]) -> LoginDecision:
        started = time.monotonic()
        user = login.user

        state["stage"] = "fingerprint"
        record = self.fingerprints.generate(login.request, login.client)
        location = resolve_location(login, record)

        state["stage"] = "geo_rules"
        geo = await self.geo_rules.evaluate(user.user_id, user.role, location, now=now)
        if not geo.allowed:
            await self.record_failed_attempt(
                login, FailureReason.GEO_RESTRICTION, record=record, location=location, now=now
            )
            return LoginDecision.denied(
                DecisionReason.GEO_RESTRICTION,
                geo.deny_reason,
                location=location,
                geo_evaluation=geo,
            )

        state["stage"] = "device"
        device = await self.devices.find_or_create(
            user.user_id, record, language=login.request.header("accept-language"), now=now
        )

        if device.is_blocked:
            await self.record_failed_attempt(
                login, FailureReason.DEVICE_NOT_TRUSTED, record=record, location=location, now=now
            )
            return LoginDecision.denied(
                DecisionReason.DEVICE_BLOCKED,
                device.blocked_reason or DEVICE_BLOCKED_MESSAGE,
                device=device,
                location=location,
            )

        state["stage"] = "drift"
        reference = await self._drift_reference(device)
        if reference is not None:
            drift = self.fingerprints.detect_drift(reference.device_info, record)
            if drift.has_changes and drift.severity == Severity.HIGH:
                device = await self.devices.update_fingerprint(
                    device.id,
                    record,
                    drift.changes,
                    previous_fingerprint=reference.fingerprint,
                    now=now,
                )
                logger.info(
                    "Device drift requires verification",
                    extra={"user_id": user.user_id, "device_id": device.id, "major_changes": drift.major_changes},
                )
                return LoginDecision.pending_verification(
                    DEVICE_CHANGED_MESSAGE,
                    device=device,
                    drift=drift,
                    location=location,
                )

        if geo.requires_2fa and not login.two_factor_verified:
            return LoginDecision.pending_2fa(
                geo.message_for(RuleKind.REQUIRE_2FA) or geo.custom_message or TWO_FACTOR_MESSAGE,
                device=device,
                location=location,
                geo_evaluation=geo,
            )

        if geo.should_challenge:
            return LoginDecision.pending_challenge(
                geo.challenge_type,
                geo.message_for(RuleKind.CHALLENGE) or geo.custom_message or CHALLENGE_MESSAGE,
                device=device,
                location=location,
                geo_evaluation=geo,
            )

        state["stage"] = "trust_score"
        trust_score = self.fingerprints.trust_score(device, record, now=now)
        await self.devices.update_trust_score(device.id, trust_score, now=now)

        state["stage"] = "device_success"
        device = await self.devices.record_success(device.id, location, now=now)

        state["stage"] = "record_attempt"
        elapsed_ms = (time.monotonic() - started) * 1000
        await self.attempts.record_attempt(
            LoginAttempt(
                user_id=user.user_id,
                email=user.email,
                success=True,
                device_fingerprint=record.fingerprint,
                device_info=record.model_dump(mode="json"),
                location=location,
                auth_method=login.auth_method,
                session_id=login.session_id,
                token_issued=True,
                request_headers=self._headers(login),
                attempt_duration_ms=elapsed_ms,
                created_at=now,
                updated_at=now,
            )
        )

        if geo.should_alert:
            state["stage"] = "alert"
            await self._emit_alert(login, device, location, geo)

        return LoginDecision.granted(
            device=device,
            trust_score=trust_score,
            location=location,
            fingerprint=record,
            geo_evaluation=geo,
        )

    async def _drift_reference(self, device: TrustedDevice) -> Optional[TrustedDevice]:
        """Device whose snapshot the current fingerprint is compared with.

        An established device is its own reference. A device seen for the
        first time is compared with the user's most recently used one.
        """
        if device.login_count > 0 or device.is_verified:
            return device
        return await self.devices.latest_other_device(device.user_id, device.id)

    async def _emit_alert(
        self,
        login: LoginRequest,
        device: TrustedDevice,
        location: Location,
        geo: GeoEvaluation,
    ) -> None:
        alert = SecurityAlert(
            alert_type="geo_rule",
            severity=Severity.MEDIUM,
            message=f"User {login.user.email} logged in from {location.country}",
            user_id=login.user.user_id,
            email=login.user.email,
            device_id=device.id,
            location=location,
            matched_rules=[r.model_dump(mode="json") for r in geo.matched_rules],
            recipients=geo.alert_emails,
            webhooks=geo.alert_webhooks,
        )
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self.alert_sink.emit, alert),
                timeout=self.alert_timeout_seconds,
            )
        except AlertDeliveryError as e:
            logger.error("Security alert delivery failed", extra={"alert_id": alert.alert_id, "error": e.message})
        except asyncio.TimeoutError:
            logger.error(
                "Security alert delivery timed out",
                extra={"alert_id": alert.alert_id, "timeout_seconds": self.alert_timeout_seconds},
            )

    @staticmethod
    def _headers(login: LoginRequest) -> AttemptHeaders:
        return AttemptHeaders(
            user_agent=login.request.user_agent,
            accept_language=login.request.header("accept-language"),
            referer=login.request.header("referer"),
        )

    async def record_failed_attempt(
        self,
        login: LoginRequest,
        reason: FailureReason,
        record: Optional[FingerprintRecord] = None,
        location: Optional[Location] = None,
        metadata: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> LoginAttempt:
        """Persist a failed attempt and count it against the device, if known.

        Also used by the login handler for its own failures, such as
        invalid credentials.
        """
        now = now or utc_now()
        attempt = await self.attempts.record_attempt(
            LoginAttempt(
                user_id=login.user.user_id,
                email=login.user.email,
                success=False,
                failure_reason=reason,
                device_fingerprint=record.fingerprint if record is not None else None,
                device_info=record.model_dump(mode="json") if record is not None else {},
                location=location or fallback_location(login),
                auth_method=login.auth_method,
                request_headers=self._headers(login),
                metadata=metadata or {},
                created_at=now,
                updated_at=now,
            )
        )
        if record is not None:
            await self.devices.record_failure_for(login.user.user_id, record.fingerprint, now=now)
        return attempt

    async def _record_fault(self, login: LoginRequest, fault: EngineFault) -> None:
        try:
            await self.record_failed_attempt(
                login,
                FailureReason.OTHER,
                metadata={"error": fault.message, "error_type": fault.error_type, "stage": fault.stage},
            )
        except Exception as e:
            logger.error(
                "Failed to record fallback login attempt",
                extra={"user_id": login.user.user_id, "error": str(e)},
            )

    async def check_brute_force(self, email: str, now: Optional[datetime] = None) -> BruteForceResult:
        return await self.patterns.detect_brute_force(email, now=now)

    async def check_credential_stuffing(
        self,
        ip: Optional[str],
        fingerprint: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CredentialStuffingResult:
        return await self.patterns.detect_credential_stuffing(ip, fingerprint, now=now)

    async def complete_device_verification(
        self,
        device_id: str,
        method: VerificationMethod = VerificationMethod.EMAIL,
        now: Optional[datetime] = None,
    ) -> TrustedDevice:
        """Mark a device verified once the caller's verification step succeeds.

        A verified device is compared only with its own snapshot from then on.
        """
        return await self.devices.verify(device_id, method=method, now=now)


class LoginShieldEngine:
    """Every engine component wired to one store.

    Administrative surfaces (rule CRUD, attempt review, device and session
    management) are the repositories themselves.
    """

    def __init__(
        self,
        store: DocumentStore,
        policy: SecurityPolicy,
        alert_sink: Optional[AlertSink] = None,
        alert_timeout_seconds: float = StorageConstants.DEFAULT_TIMEOUT_SECONDS,
    ):
        self.store = store
        self.policy = policy

        self.scorer = AttemptRiskScorer(policy.risk_scoring)
        self.rules = AccessRuleRepository(store)
        self.attempts = LoginAttemptRepository(store, self.scorer)
        self.devices = TrustedDeviceRepository(store, policy.device)
        self.sessions = SessionRepository(store)

        self.fingerprints = FingerprintAgent(policy.trust_score, policy.drift)
        self.geo_rules = GeoRuleEvaluator(self.rules)
        self.patterns = PatternDetector(self.attempts, policy.brute_force, policy.credential_stuffing)
        self.session_anomalies = SessionAnomalyDetector(self.sessions, policy.sessions)

        self.orchestrator = LoginSecurityOrchestrator(
            fingerprints=self.fingerprints,
            geo_rules=self.geo_rules,
            devices=self.devices,
            attempts=self.attempts,
            patterns=self.patterns,
            alert_sink=alert_sink,
            alert_timeout_seconds=alert_timeout_seconds,
        )


def _load_policy(config: Config) -> SecurityPolicy:
    path: Path = config.resolved_policy_file
    if config.policy_file is None and not path.exists():
        return load_security_policy(None)
    return load_security_policy(path)


def build_store(config: Config) -> DocumentStore:
    """Document store named by ``config.store_factory``, in-memory when unset.

    Raises:
        ConfigurationError: If the factory cannot be imported or returns no DocumentStore
    """
    if not config.store_factory:
        return InMemoryDocumentStore()

    module_name, _, attribute = config.store_factory.partition(":")
    try:
        factory = getattr(importlib.import_module(module_name), attribute)
    except (ImportError, AttributeError, ValueError) as e:
        raise ConfigurationError(
            f"LOGINSHIELD_STORE_FACTORY cannot be loaded: {config.store_factory}",
            details={"error": str(e)},
        ) from e

    store = factory()
    if not isinstance(store, DocumentStore):
        raise ConfigurationError(
            f"LOGINSHIELD_STORE_FACTORY did not return a DocumentStore: {config.store_factory}",
            details={"returned": type(store).__name__},
        )
    return store


def create_engine(
    store: Optional[DocumentStore] = None,
    config: Optional[Config] = None,
    policy: Optional[SecurityPolicy] = None,
    alert_sink: Optional[AlertSink] = None,
) -> LoginShieldEngine:
    """Build the engine from configuration.

    Args:
        store: Backing document store, defaults to build_store(config)
        config: Runtime configuration, defaults to get_config()
        policy: Security policy, defaults to the configured policy file
        alert_sink: Alert sink, defaults to the configured sink

    Returns:
        LoginShieldEngine with every store call under the configured timeout
    """
    config = config or get_config()
    policy = policy or _load_policy(config)
    timed_store = TimeoutDocumentStore(store or build_store(config), config.store_timeout_seconds)

    logger.info(
        "LoginShield engine created",
        extra={
            "environment": config.environment.value,
            "policy_version": policy.version,
            "store_timeout_seconds": config.store_timeout_seconds,
        },
    )
    return LoginShieldEngine(
        timed_store,
        policy,
        alert_sink or create_alert_sink(config),
        alert_timeout_seconds=config.store_timeout_seconds,
    )
