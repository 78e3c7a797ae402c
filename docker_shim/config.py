"""
Daemon controller configuration.

``DaemonConfig()`` points at the host's default daemon. ``DaemonConfig.managed()``
describes a private daemon that the controller launches itself under
``base_dir``. ``DaemonConfig.from_env()`` reads overrides from the environment.
"""

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional


DEFAULT_EXECUTABLE = "docker"
DEFAULT_BASE_DIR = "/"
DEFAULT_CIDR = "10.123.0.0/24"
DEFAULT_BRIDGE = "docker0"
DEFAULT_SOCKET = "unix:///var/run/docker.sock"

_TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class DaemonConfig:
    """
    Settings for one DaemonController

    Attributes:
        executable: Path or name of the docker CLI
        manage_daemon: Whether the controller launches and stops its own daemon
        base_dir: Root for the managed daemon's directories, pidfile and socket
        bridge: Network bridge device the managed daemon attaches to
        cidr: Address block assigned to the bridge when it is created
        socket: Endpoint of a pre-existing daemon
        start_timeout: Seconds to wait for a managed daemon to answer
        retry_interval: First delay between readiness attempts
        retry_max_interval: Upper bound for the retry delay
        info_timeout: Seconds before a single readiness check is abandoned
        stop_timeout: Seconds to wait for the daemon to exit after kill
    """

    executable: str = DEFAULT_EXECUTABLE
    manage_daemon: bool = False
    base_dir: str = DEFAULT_BASE_DIR
    bridge: str = DEFAULT_BRIDGE
    cidr: str = DEFAULT_CIDR
    socket: str = DEFAULT_SOCKET
    start_timeout: float = 60.0
    retry_interval: float = 0.1
    retry_max_interval: float = 2.0
    info_timeout: float = 10.0
    stop_timeout: float = 30.0

    @classmethod
    def managed(cls, base_dir: str, **kwargs) -> "DaemonConfig":
        """Config for a daemon launched by the controller under base_dir"""
        return cls(manage_daemon=True, base_dir=base_dir, **kwargs)

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "DaemonConfig":
        """
        Build a config from DOCKER_SHIM_* variables and DOCKER_HOST

        Args:
            environ: Mapping to read instead of os.environ

        Returns:
            DaemonConfig: Defaults overridden by whatever is set
        """
        env = os.environ if environ is None else environ
        config = cls()
        overrides = {}
        if env.get("DOCKER_SHIM_EXEC"):
            overrides["executable"] = env["DOCKER_SHIM_EXEC"]
        if env.get("DOCKER_SHIM_MANAGE_DAEMON"):
            overrides["manage_daemon"] = env["DOCKER_SHIM_MANAGE_DAEMON"].strip().lower() in _TRUE_VALUES
        if env.get("DOCKER_SHIM_BASE_DIR"):
            overrides["base_dir"] = env["DOCKER_SHIM_BASE_DIR"]
        if env.get("DOCKER_SHIM_BRIDGE"):
            overrides["bridge"] = env["DOCKER_SHIM_BRIDGE"]
        if env.get("DOCKER_SHIM_CIDR"):
            overrides["cidr"] = env["DOCKER_SHIM_CIDR"]
        if env.get("DOCKER_HOST"):
            overrides["socket"] = env["DOCKER_HOST"]
        if env.get("DOCKER_SHIM_START_TIMEOUT"):
            try:
                overrides["start_timeout"] = float(env["DOCKER_SHIM_START_TIMEOUT"])
            except ValueError:
                raise ValueError(
                    f"DOCKER_SHIM_START_TIMEOUT must be a number, got {env['DOCKER_SHIM_START_TIMEOUT']!r}"
                ) from None
        return replace(config, **overrides)

    @property
    def graph_root(self) -> Path:
        return Path(self.base_dir) / "var" / "lib" / "docker"

    @property
    def exec_root(self) -> Path:
        return Path(self.base_dir) / "var" / "run" / "docker"

    @property
    def pidfile(self) -> Path:
        return Path(self.base_dir) / "pid"

    @property
    def managed_socket(self) -> str:
        return "unix://" + str(Path(self.base_dir) / "var" / "run" / "docker.sock")
