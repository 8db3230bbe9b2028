"""
Tests for Command Proxy Configuration and socket path helpers
"""

import os
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from ipc.config import RelayConfig, DEFAULT_SOCKET_PATH
from ipc.paths import ensure_socket_dir, prepare_socket_path, remove_stale_socket


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


class TestRelayConfigFromEnv:
    """Tests for loading configuration from the environment."""

    def test_defaults(self):
        """Test defaults apply when nothing is set."""
        with patch.dict(os.environ, {}, clear=True):
            config = RelayConfig.from_env()

        assert config.socket_path == DEFAULT_SOCKET_PATH
        assert config.socket_mode is None
        assert config.log_level == "INFO"

    def test_values_from_env(self):
        """Test environment variables override defaults."""
        env = {
            "UIAUTO_SOCKET_PATH": "/tmp/custom_sock",
            "UIAUTO_SOCKET_MODE": "600",
            "UIAUTO_LOG_LEVEL": "debug",
        }
        with patch.dict(os.environ, env, clear=True):
            config = RelayConfig.from_env()

        assert config.socket_path == "/tmp/custom_sock"
        assert config.socket_mode == 0o600
        assert config.log_level == "DEBUG"

    def test_invalid_socket_mode(self):
        """Test a non-octal mode is rejected."""
        with patch.dict(os.environ, {"UIAUTO_SOCKET_MODE": "rw-"}, clear=True):
            with pytest.raises(ValueError, match="octal"):
                RelayConfig.from_env()


class TestRelayConfigValidate:
    """Tests for configuration validation."""

    def test_valid_config(self):
        """Test the default configuration is valid."""
        is_valid, errors = RelayConfig().validate()

        assert is_valid
        assert errors == []

    def test_invalid_values(self, temp_dir):
        """Test each problem is reported."""
        config = RelayConfig(socket_path=str(temp_dir), socket_mode=0o1777, log_level="LOUD")

        is_valid, errors = config.validate()

        assert not is_valid
        assert len(errors) == 3

    def test_empty_socket_path(self):
        """Test an empty socket path is invalid."""
        is_valid, errors = RelayConfig(socket_path="").validate()

        assert not is_valid
        assert "empty" in errors[0]


class TestSocketPaths:
    """Tests for socket path preparation."""

    def test_remove_stale_file(self, temp_dir):
        """Test a leftover file is removed."""
        stale = temp_dir / "sock"
        stale.write_text("stale")

        remove_stale_socket(stale)

        assert not stale.exists()

    def test_remove_stale_directory(self, temp_dir):
        """Test a directory in the way is removed recursively."""
        stale = temp_dir / "sock"
        (stale / "inner").mkdir(parents=True)

        remove_stale_socket(stale)

        assert not stale.exists()

    def test_remove_missing_path_is_noop(self, temp_dir):
        """Test nothing happens when the path is free."""
        remove_stale_socket(temp_dir / "missing")

    def test_ensure_socket_dir(self, temp_dir):
        """Test parent directories are created."""
        parent = ensure_socket_dir(temp_dir / "a" / "b" / "sock")

        assert parent == temp_dir / "a" / "b"
        assert parent.is_dir()

    def test_prepare_socket_path(self, temp_dir):
        """Test preparation clears the file and keeps the directory."""
        path = temp_dir / "run" / "sock"
        path.parent.mkdir()
        path.write_text("stale")

        assert prepare_socket_path(path) == path
        assert not path.exists()
        assert path.parent.is_dir()
