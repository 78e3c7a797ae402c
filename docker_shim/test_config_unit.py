#!/usr/bin/env python3
"""
Unit tests for DaemonConfig
"""

import dataclasses
from pathlib import Path

import pytest

from docker_shim.config import DaemonConfig


def test_defaults():
    """Test default configuration"""
    config = DaemonConfig()

    assert config.executable == "docker"
    assert config.manage_daemon is False
    assert config.base_dir == "/"
    assert config.cidr == "10.123.0.0/24"
    assert config.bridge == "docker0"
    assert config.socket == "unix:///var/run/docker.sock"


def test_managed_paths():
    """Test paths of a managed daemon"""
    config = DaemonConfig.managed("/tmp/e2e", bridge="e2ebr0")

    assert config.manage_daemon is True
    assert config.bridge == "e2ebr0"
    assert config.graph_root == Path("/tmp/e2e/var/lib/docker")
    assert config.exec_root == Path("/tmp/e2e/var/run/docker")
    assert config.pidfile == Path("/tmp/e2e/pid")
    assert config.managed_socket == "unix:///tmp/e2e/var/run/docker.sock"


def test_managed_socket_at_root():
    """Test the managed socket for the root base directory"""
    assert DaemonConfig().managed_socket == "unix:///var/run/docker.sock"


def test_frozen():
    """Test that the config cannot be modified"""
    config = DaemonConfig()
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.socket = "tcp://127.0.0.1:2375"


class TestFromEnv:

    def test_empty_environment(self):
        """Test loading from an empty environment"""
        assert DaemonConfig.from_env({}) == DaemonConfig()

    def test_overrides(self):
        """Test loading every supported variable"""
        config = DaemonConfig.from_env({
            "DOCKER_SHIM_EXEC": "/usr/local/bin/docker",
            "DOCKER_SHIM_MANAGE_DAEMON": "Yes",
            "DOCKER_SHIM_BASE_DIR": "/tmp/e2e",
            "DOCKER_SHIM_BRIDGE": "e2ebr0",
            "DOCKER_SHIM_CIDR": "10.9.0.1/24",
            "DOCKER_HOST": "tcp://127.0.0.1:2375",
            "DOCKER_SHIM_START_TIMEOUT": "5.5",
        })

        assert config.executable == "/usr/local/bin/docker"
        assert config.manage_daemon is True
        assert config.base_dir == "/tmp/e2e"
        assert config.bridge == "e2ebr0"
        assert config.cidr == "10.9.0.1/24"
        assert config.socket == "tcp://127.0.0.1:2375"
        assert config.start_timeout == 5.5

    @pytest.mark.parametrize("value", ["0", "false", "no", "off"])
    def test_manage_daemon_false(self, value):
        """Test false values for DOCKER_SHIM_MANAGE_DAEMON"""
        assert DaemonConfig.from_env({"DOCKER_SHIM_MANAGE_DAEMON": value}).manage_daemon is False

    def test_bad_timeout(self):
        """Test a non-numeric start timeout"""
        with pytest.raises(ValueError, match="DOCKER_SHIM_START_TIMEOUT"):
            DaemonConfig.from_env({"DOCKER_SHIM_START_TIMEOUT": "soon"})

    def test_reads_os_environ(self, monkeypatch):
        """Test loading from os.environ"""
        monkeypatch.setenv("DOCKER_SHIM_BRIDGE", "fromenv0")
        assert DaemonConfig.from_env().bridge == "fromenv0"


# Test runner
if __name__ == "__main__":
    pytest.main([__file__, "-v"])
