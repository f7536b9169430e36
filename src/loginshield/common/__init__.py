"""Common utilities - logging, config, exceptions."""

from loginshield.common.logging.logger import get_logger
from loginshield.common.config import (
    Config,
    SecurityPolicy,
    get_config,
    load_security_policy,
    reset_config,
)
from loginshield.common.exceptions import (
    LoginShieldException,
    ConfigurationError,
    ValidationError,
    StorageError,
    StoreTimeoutError,
    RecordNotFoundError,
    RuleEvaluationError,
    AlertDeliveryError,
)

__all__ = [
    # Logging
    "get_logger",
    # Config
    "Config",
    "SecurityPolicy",
    "get_config",
    "load_security_policy",
    "reset_config",
    # Exceptions
    "LoginShieldException",
    "ConfigurationError",
    "ValidationError",
    "StorageError",
    "StoreTimeoutError",
    "RecordNotFoundError",
    "RuleEvaluationError",
    "AlertDeliveryError",
]
