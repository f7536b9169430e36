"""Fingerprint Agent - module init."""

from loginshield.agents.fingerprint.agent import FingerprintAgent
from loginshield.agents.fingerprint.schema import DriftReport, IpInfo

__all__ = ["FingerprintAgent", "DriftReport", "IpInfo"]
