"""Session Anomaly Detector - module init."""

from loginshield.agents.session.agent import SessionAnomalyDetector
from loginshield.agents.session.schema import SessionAnomaly, SessionRef

__all__ = ["SessionAnomalyDetector", "SessionAnomaly", "SessionRef"]
