"""Configuration management - Centralized configuration for LoginShield.

Provides environment-aware configuration with sensible defaults.
All configuration is loaded from environment variables with fallbacks.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AlertSinkType(str, Enum):
    """Security alert sink backends."""
    LOG = "log"
    FILE = "file"


def _get_project_root() -> Path:
    """Get the project root directory."""
    # settings.py -> config -> common -> loginshield -> src -> project_root
    current = Path(__file__).resolve()
    return current.parent.parent.parent.parent.parent


@dataclass
class Config:
    """Central configuration object for LoginShield.

    All settings can be overridden via environment variables prefixed with
    LOGINSHIELD_.

    Example:
        LOGINSHIELD_ENVIRONMENT=production
        LOGINSHIELD_LOG_LEVEL=INFO
        LOGINSHIELD_STORE_TIMEOUT_SECONDS=1.5
        LOGINSHIELD_STORE_FACTORY=myapp.storage:build_store
    """

    # Core settings
    environment: Environment = field(
        default_factory=lambda: Environment(
            os.getenv("LOGINSHIELD_ENVIRONMENT", "development")
        )
    )
    debug: bool = field(
        default_factory=lambda: os.getenv("LOGINSHIELD_DEBUG", "false").lower() == "true"
    )
    log_level: LogLevel = field(
        default_factory=lambda: LogLevel(os.getenv("LOGINSHIELD_LOG_LEVEL", "INFO"))
    )

    # Paths
    project_root: Path = field(default_factory=_get_project_root)

    # Security policy thresholds (YAML)
    policy_file: Optional[Path] = field(
        default_factory=lambda: (
            Path(os.environ["LOGINSHIELD_POLICY_FILE"])
            if os.getenv("LOGINSHIELD_POLICY_FILE")
            else None
        )
    )

    # Storage
    store_timeout_seconds: float = field(
        default_factory=lambda: float(
            os.getenv("LOGINSHIELD_STORE_TIMEOUT_SECONDS", "2.0")
        )
    )
    # "module:callable" returning the DocumentStore
    store_factory: Optional[str] = field(
        default_factory=lambda: os.getenv("LOGINSHIELD_STORE_FACTORY") or None
    )

    # Alerts
    alert_sink_type: AlertSinkType = field(
        default_factory=lambda: AlertSinkType(
            os.getenv("LOGINSHIELD_ALERT_SINK", "log")
        )
    )
    alert_log_dir: Path = field(
        default_factory=lambda: Path(
            os.getenv("LOGINSHIELD_ALERT_LOG_DIR", "./logs/alerts")
        )
    )

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.store_timeout_seconds <= 0:
            raise ValueError(
                "LOGINSHIELD_STORE_TIMEOUT_SECONDS must be a positive number"
            )

        if self.policy_file is not None and not self.policy_file.exists():
            raise ValueError(
                f"LOGINSHIELD_POLICY_FILE points to a missing file: {self.policy_file}"
            )

        # Warn about debug in production
        if self.environment == Environment.PRODUCTION and self.debug:
            import warnings
            warnings.warn(
                "Debug mode is enabled in production environment",
                RuntimeWarning,
                stacklevel=2
            )

    @property
    def config_dir(self) -> Path:
        """Get the config directory path."""
        return self.project_root / "config"

    @property
    def resolved_policy_file(self) -> Path:
        """Policy file in use: the explicit one, else the bundled default."""
        if self.policy_file is not None:
            return self.policy_file
        return self.config_dir / "security_policy.yaml"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance.

    Returns:
        Config: The global configuration singleton.
    """
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None
