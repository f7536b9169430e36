"""Tests for security policy loading."""

from pathlib import Path

import pytest

from loginshield.common.config.policy import SecurityPolicy, load_security_policy
from loginshield.common.exceptions import ConfigurationError

BUNDLED_POLICY = Path(__file__).resolve().parents[3] / "config" / "security_policy.yaml"


class TestSecurityPolicy:
    """Defaults and validation of the policy model."""

    def test_defaults(self):
        """Test the documented default thresholds."""
        policy = SecurityPolicy()
        assert policy.brute_force.window_minutes == 15
        assert policy.brute_force.threshold == 5
        assert policy.credential_stuffing.window_minutes == 60
        assert policy.credential_stuffing.threshold == 10
        assert policy.device.block_failure_threshold == 10
        assert policy.sessions.max_distinct_ips == 3
        assert policy.retention.login_attempt_days == 90

    def test_none_returns_defaults(self):
        """Test that no file means the default policy."""
        assert load_security_policy(None) == SecurityPolicy()

    def test_bundled_policy_loads(self):
        """Test that the shipped policy file is valid."""
        policy = load_security_policy(BUNDLED_POLICY)
        assert policy.version == "1.0.0"
        assert policy == SecurityPolicy()

    def test_partial_file_keeps_other_defaults(self, tmp_path):
        """Test that sections left out of the file keep their defaults."""
        path = tmp_path / "policy.yaml"
        path.write_text("brute_force:\n  threshold: 3\n")

        policy = load_security_policy(path)
        assert policy.brute_force.threshold == 3
        assert policy.brute_force.window_minutes == 15
        assert policy.sessions == SecurityPolicy().sessions

    def test_missing_file_raises(self, tmp_path):
        """Test that a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_security_policy(tmp_path / "missing.yaml")

    def test_invalid_yaml_raises(self, tmp_path):
        """Test that broken YAML is a configuration error."""
        path = tmp_path / "policy.yaml"
        path.write_text("brute_force: [unclosed\n")
        with pytest.raises(ConfigurationError, match="not valid YAML"):
            load_security_policy(path)

    def test_invalid_values_raise(self, tmp_path):
        """Test that out-of-range values fail validation."""
        path = tmp_path / "policy.yaml"
        path.write_text("brute_force:\n  threshold: 0\n")
        with pytest.raises(ConfigurationError) as exc_info:
            load_security_policy(path)
        assert exc_info.value.code == "CONFIG_ERROR"
        assert exc_info.value.details["errors"]
