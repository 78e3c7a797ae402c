"""
Subprocess execution for the daemon controller.

The controller never calls ``subprocess`` directly. It goes through a
``CommandExecutor`` for ordinary commands and a ``PrivilegedExecutor`` for the
ones that need root (bridge setup, launching and killing the daemon), so that
tests can swap either one for a mock.
"""

import logging
import subprocess
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple


@dataclass
class CommandResult:
    """Outcome of one finished subprocess."""

    args: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """stdout followed by stderr"""
        return self.stdout + self.stderr


def log_with_prefix(logger: logging.Logger, prefix: str, output: str,
                    level: int = logging.INFO) -> None:
    """
    Log every non-empty line of subprocess output tagged with its origin

    Args:
        logger: Destination logger
        prefix: Origin tag, e.g. "docker"
        output: Raw captured output
        level: Logging level for each line
    """
    for line in output.splitlines():
        if line.strip():
            logger.log(level, f"[{prefix}] {line.rstrip()}")


class CommandExecutor:
    """Runs commands as the current user"""

    def _argv(self, args: Sequence[str]) -> List[str]:
        return [str(arg) for arg in args]

    def run(self, args: Sequence[str], timeout: Optional[float] = None) -> CommandResult:
        """
        Run a command to completion and capture its output

        Args:
            args: Command and arguments
            timeout: Seconds before the command is abandoned, optional

        Returns:
            CommandResult: Return code and captured stdout/stderr

        Raises:
            OSError: The command could not be started
            subprocess.TimeoutExpired: The timeout elapsed
        """
        argv = self._argv(args)
        completed = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        return CommandResult(
            args=argv,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )

    def spawn(self, args: Sequence[str]) -> subprocess.Popen:
        """
        Start a long-running command without waiting for it

        stdout and stderr are merged into a single text pipe.

        Raises:
            OSError: The command could not be started
        """
        return subprocess.Popen(
            self._argv(args),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
        )


@dataclass
class PrivilegedExecutor(CommandExecutor):
    """Runs commands through an elevation wrapper (sudo by default)"""

    prefix: Tuple[str, ...] = field(default=("sudo",))

    def _argv(self, args: Sequence[str]) -> List[str]:
        return list(self.prefix) + super()._argv(args)
