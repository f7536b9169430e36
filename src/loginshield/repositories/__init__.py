"""Repositories - typed persistence over the document store."""

from loginshield.repositories.base import Repository, to_document
from loginshield.repositories.access_rules import AccessRuleRepository
from loginshield.repositories.login_attempts import LoginAttemptRepository
from loginshield.repositories.trusted_devices import TrustedDeviceRepository, describe_device
from loginshield.repositories.sessions import SessionRepository, hash_token

__all__ = [
    "Repository",
    "to_document",
    "AccessRuleRepository",
    "LoginAttemptRepository",
    "TrustedDeviceRepository",
    "SessionRepository",
    "describe_device",
    "hash_token",
]
