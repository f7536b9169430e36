"""Alert sink factory."""

from typing import Optional

from loginshield.common.config.settings import AlertSinkType, Config, get_config
from loginshield.governance.alerts.sink import AlertSink, FileAlertSink, LoggingAlertSink


def create_alert_sink(config: Optional[Config] = None) -> AlertSink:
    """Build the alert sink selected by LOGINSHIELD_ALERT_SINK."""
    config = config or get_config()
    if config.alert_sink_type == AlertSinkType.FILE:
        return FileAlertSink(log_dir=config.alert_log_dir)
    return LoggingAlertSink()
