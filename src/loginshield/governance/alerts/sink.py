"""Alert sinks - where security alerts are delivered.

The engine only raises alerts; delivery to people (email, webhooks) is
the job of whatever tails these sinks.
"""

import fcntl
import hashlib
import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, List, Optional

from loginshield.common.exceptions import AlertDeliveryError
from loginshield.governance.alerts.schemas import SecurityAlert

logger = logging.getLogger(__name__)


class AlertLogIntegrityError(Exception):
    """Raised when the alert log hash chain does not verify."""
    pass


class AlertSink(ABC):
    """Append-only destination for security alerts."""

    @abstractmethod
    def emit(self, alert: SecurityAlert) -> SecurityAlert:
        """Deliver an alert.

        Returns:
            The alert as written

        Raises:
            AlertDeliveryError: If the alert could not be written
        """
        pass


class LoggingAlertSink(AlertSink):
    """Writes alerts to the application log at WARNING."""

    def __init__(self, logger_name: str = "loginshield.alerts"):
        self._logger = logging.getLogger(logger_name)

    def emit(self, alert: SecurityAlert) -> SecurityAlert:
        self._logger.warning(
            alert.message,
            extra={
                "alert_id": alert.alert_id,
                "alert_type": alert.alert_type,
                "severity": alert.severity.value,
                "user_id": alert.user_id,
                "recipients": alert.recipients,
            },
        )
        return alert


class FileAlertSink(AlertSink):
    """JSONL alert log with daily rotation and a SHA-256 hash chain.

    Each line stores the hash of the previous line, so edits or deletions
    break verify_integrity().
    """

    def __init__(
        self,
        log_dir: Path,
        log_filename_pattern: str = "security_alerts_{date}.jsonl",
        fsync_on_write: bool = False,
    ):
        """Initialize file alert sink.

        Args:
            log_dir: Directory for alert logs
            log_filename_pattern: Log file name; {date} is replaced with YYYY-MM-DD
            fsync_on_write: fsync after each write
        """
        self.log_dir = Path(log_dir)
        self.log_filename_pattern = log_filename_pattern
        self.fsync_on_write = fsync_on_write

        self._lock = threading.Lock()
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self._last_hash: Optional[str] = self._scan_last_hash(self._log_path())

    def _log_path(self, date: Optional[str] = None) -> Path:
        date = date or datetime.now(timezone.utc).strftime("%Y-%m-%d")
        return self.log_dir / self.log_filename_pattern.replace("{date}", date)

    @staticmethod
    def _scan_last_hash(log_path: Path) -> Optional[str]:
        if not log_path.exists():
            return None
        last_hash = None
        with open(log_path, "r") as f:
            for line in f:
                line = line.strip()
                if line:
                    last_hash = json.loads(line).get("entry_hash")
        return last_hash

    @staticmethod
    def _canonical(value: Any) -> Any:
        if isinstance(value, dict):
            return {k: FileAlertSink._canonical(v) for k, v in sorted(value.items())}
        if isinstance(value, list):
            return [FileAlertSink._canonical(v) for v in value]
        return value

    @classmethod
    def _compute_hash(cls, entry: dict) -> str:
        content = json.dumps(cls._canonical(entry), sort_keys=True, ensure_ascii=False, default=str)
        return hashlib.sha256(content.encode("utf-8")).hexdigest()

    def emit(self, alert: SecurityAlert) -> SecurityAlert:
        with self._lock:
            log_path = self._log_path()
            if not log_path.exists():
                # New day, new chain
                self._last_hash = None

            entry = alert.model_dump(mode="json")
            entry["previous_hash"] = self._last_hash
            entry["entry_hash"] = None
            entry["entry_hash"] = self._compute_hash(entry)
            chained = SecurityAlert.model_validate(entry)

            try:
                fd = os.open(str(log_path), os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
                try:
                    fcntl.flock(fd, fcntl.LOCK_EX)
                    try:
                        os.write(fd, (chained.to_jsonl() + "\n").encode("utf-8"))
                        if self.fsync_on_write:
                            os.fsync(fd)
                    finally:
                        fcntl.flock(fd, fcntl.LOCK_UN)
                finally:
                    os.close(fd)
            except OSError as e:
                raise AlertDeliveryError(
                    "Failed to write security alert",
                    details={"alert_id": alert.alert_id, "path": str(log_path), "error": str(e)},
                ) from e

            self._last_hash = chained.entry_hash
            return chained

    def get_alerts(self, date: Optional[str] = None, user_id: Optional[str] = None) -> Iterator[SecurityAlert]:
        log_path = self._log_path(date)
        if not log_path.exists():
            return
        with open(log_path, "r") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    alert = SecurityAlert.from_jsonl(line)
                except ValueError as e:
                    logger.warning("Skipped malformed alert entry", extra={"error": str(e)})
                    continue
                if user_id and alert.user_id != user_id:
                    continue
                yield alert

    def verify_integrity(self, date: Optional[str] = None) -> bool:
        """Walk the hash chain of one day's log.

        Raises:
            AlertLogIntegrityError: At the first broken link
        """
        log_path = self._log_path(date)
        if not log_path.exists():
            return True

        previous_hash = None
        with open(log_path, "r") as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError as e:
                    raise AlertLogIntegrityError(f"Malformed JSON at line {line_number}: {e}") from e

                if entry.get("previous_hash") != previous_hash:
                    raise AlertLogIntegrityError(f"Hash chain broken at line {line_number}")

                stored_hash = entry.get("entry_hash")
                entry["entry_hash"] = None
                if self._compute_hash(entry) != stored_hash:
                    raise AlertLogIntegrityError(
                        f"Entry hash mismatch at line {line_number}. Entry may have been tampered with."
                    )
                previous_hash = stored_hash
        return True

    def get_log_files(self) -> List[Path]:
        return sorted(self.log_dir.glob("*.jsonl"))
