"""Exceptions raised by the Docker daemon controller."""

from typing import Optional, Sequence


class DockerShimError(Exception):
    """Base exception for controller operations."""

    def __init__(self, operation: str, message: str):
        super().__init__(f"{operation}: {message}")
        self.operation = operation


class CommandError(DockerShimError):
    """Raised when a subprocess fails or cannot be invoked."""

    def __init__(self,
                 operation: str,
                 args: Sequence[str],
                 returncode: Optional[int] = None,
                 output: str = ""):
        if returncode is None:
            message = f"could not run {' '.join(args)}"
        else:
            message = f"{' '.join(args)} exited with code {returncode}"
        super().__init__(operation, message)
        self.command = list(args)
        self.returncode = returncode
        self.output = output


class DaemonError(DockerShimError):
    """Raised when the managed daemon cannot be started or stopped."""

    pass


class DaemonTimeoutError(DaemonError):
    """Raised when the daemon does not answer before the start deadline."""

    def __init__(self, timeout: float, output: str = ""):
        super().__init__("start", f"daemon not ready after {timeout:g}s")
        self.timeout = timeout
        self.output = output


class DaemonCancelledError(DaemonError):
    """Raised when the caller cancels the readiness wait."""

    pass
