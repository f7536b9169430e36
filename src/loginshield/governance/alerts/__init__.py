"""Alerts module - append-only delivery of security alerts.

Components:
- SecurityAlert: Alert record
- AlertSink: Abstract base class for sinks
- LoggingAlertSink: Alerts to the application log
- FileAlertSink: JSONL log with hash chain integrity
"""

from loginshield.governance.alerts.config import create_alert_sink
from loginshield.governance.alerts.schemas import SecurityAlert
from loginshield.governance.alerts.sink import (
    AlertLogIntegrityError,
    AlertSink,
    FileAlertSink,
    LoggingAlertSink,
)

__all__ = [
    "SecurityAlert",
    "AlertSink",
    "LoggingAlertSink",
    "FileAlertSink",
    "AlertLogIntegrityError",
    "create_alert_sink",
]
