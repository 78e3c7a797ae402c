"""
Docker Shim Module
Drives a local Docker daemon through the docker CLI for end-to-end test harnesses
"""

from .config import DaemonConfig
from .daemon_controller import DaemonController, Docker, new_docker
from .errors import (
    CommandError,
    DaemonCancelledError,
    DaemonError,
    DaemonTimeoutError,
    DockerShimError,
)
from .executor import CommandExecutor, CommandResult, PrivilegedExecutor

__version__ = "1.0.0"
__all__ = [
    "CommandError",
    "CommandExecutor",
    "CommandResult",
    "DaemonCancelledError",
    "DaemonConfig",
    "DaemonController",
    "DaemonError",
    "DaemonTimeoutError",
    "Docker",
    "DockerShimError",
    "PrivilegedExecutor",
    "new_docker",
]
