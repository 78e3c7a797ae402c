import logging
import subprocess
import threading
import time
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

import docker

from .config import DaemonConfig
from .errors import (
    CommandError,
    DaemonCancelledError,
    DaemonError,
    DaemonTimeoutError,
    DockerShimError,
)
from .executor import CommandExecutor, CommandResult, PrivilegedExecutor, log_with_prefix


class Docker(ABC):
    """
    Shim to a Docker instance driven through the docker CLI
    """

    @abstractmethod
    def start(self) -> None:
        """Start the daemon (if needed)"""

    @abstractmethod
    def stop(self) -> None:
        """Stop the daemon (if started)"""

    @abstractmethod
    def pull(self, *images: str) -> None:
        """Pull images into docker"""

    @abstractmethod
    def run(self, *args: str) -> str:
        """Call "docker run" with args, returning the ID of the container"""

    @abstractmethod
    def remove(self, ref: str) -> None:
        """Force-remove the container named by ref"""

    @abstractmethod
    def kill(self, ref: str) -> None:
        """Kill the container named by ref"""

    @abstractmethod
    def list(self, filter_expr: str = "") -> List[str]:
        """List IDs of running containers matching filter_expr ("" lists all)"""


class DaemonController(Docker):
    """
    Docker Daemon Controller Class
    Drives a docker daemon through the docker CLI for end-to-end tests, and
    optionally owns the daemon's lifecycle (private directories, bridge, process)
    """

    def __init__(self,
                 config: Optional[DaemonConfig] = None,
                 executor: Optional[CommandExecutor] = None,
                 privileged: Optional[CommandExecutor] = None,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize Daemon Controller

        Args:
            config: Daemon settings, defaults to the host daemon
            executor: Runs docker and readiness commands, optional
            privileged: Runs commands that need root, optional (sudo)
            logger: Logger instance, optional
        """
        self.config = config or DaemonConfig()
        self.executor = executor or CommandExecutor()
        self.privileged = privileged or PrivilegedExecutor()
        self.socket = self.config.socket
        self.process: Optional[subprocess.Popen] = None
        self._output_thread: Optional[threading.Thread] = None
        self.logger = logger or self._setup_logger()

    def _setup_logger(self) -> logging.Logger:
        """Setup logger"""
        logger = logging.getLogger(f"DaemonController-{self.config.bridge}")
        logger.setLevel(logging.INFO)

        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            logger.addHandler(handler)

        return logger

    def start(self, cancel: Optional[threading.Event] = None) -> None:
        """
        Launch the managed daemon and wait until it answers

        Does nothing when the controller uses a pre-existing daemon.

        Args:
            cancel: Event that aborts the readiness wait when set, optional

        Raises:
            DaemonError: Directories, launch or early daemon exit failed
            DaemonTimeoutError: The daemon did not answer within start_timeout
            DaemonCancelledError: cancel was set during the wait
            CommandError: Bridge setup failed or docker could not be run
        """
        if not self.config.manage_daemon:
            return

        if self.process is not None:
            if self.process.poll() is None:
                raise DaemonError("start", f"daemon already running (pid {self.process.pid})")
            self._release()

        exec_root = self.config.exec_root
        graph_root = self.config.graph_root
        for directory in (exec_root, graph_root):
            try:
                directory.mkdir(mode=0o755, parents=True, exist_ok=True)
            except OSError as e:
                raise DaemonError("start", f"cannot create {directory}: {e}") from e

        self.socket = self.config.managed_socket

        self._ensure_bridge()

        args = [
            self.config.executable, "daemon",
            f"--bridge={self.config.bridge}",
            f"--exec-root={exec_root}",
            f"--graph={graph_root}",
            f"--host={self.socket}",
            f"--pidfile={self.config.pidfile}",
        ]

        self.logger.info(f"Starting Docker {args}")
        try:
            self.process = self.privileged.spawn(args)
        except OSError as e:
            raise DaemonError("start", f"cannot launch daemon: {e}") from e

        self._output_thread = threading.Thread(
            target=self._forward_output,
            args=(self.process,),
            daemon=True
        )
        self._output_thread.start()

        try:
            self._wait_for_start(cancel)
        except DockerShimError:
            self._abandon()
            raise

    def stop(self) -> None:
        """
        Signal the managed daemon and wait for it to exit

        Does nothing when the controller uses a pre-existing daemon.

        Raises:
            DaemonError: The daemon could not be signalled or reaped
        """
        if not self.config.manage_daemon:
            return

        if self.process is None:
            self.logger.warning("Docker daemon was not started")
            return

        if self.process.poll() is not None:
            self.logger.warning(f"Docker daemon already exited with {self.process.returncode}")
            self._release()
            return

        # The daemon runs as root.
        pid = self.process.pid
        try:
            result = self.privileged.run(["kill", str(pid)])
        except OSError as e:
            raise DaemonError("stop", f"cannot signal daemon (pid {pid}): {e}") from e

        if not result.ok:
            log_with_prefix(self.logger, "kill", result.output)
            raise DaemonError("stop", f"kill {pid} exited with code {result.returncode}")

        self._release()

    def _release(self) -> None:
        """
        Reap the daemon process and drop the handle

        A daemon that outlives stop_timeout gets "kill -9". The handle is
        kept when even that fails, so start() keeps refusing to launch a
        second daemon on the same socket.

        Raises:
            DaemonError: The daemon could not be reaped
        """
        process = self.process
        try:
            state = process.wait(timeout=self.config.stop_timeout)
        except subprocess.TimeoutExpired as e:
            self.logger.warning(f"Wait for docker returned {e}")
            state = self._force_kill(process)
        self.logger.info(f"Docker exited with {state}")

        self.process = None
        thread, self._output_thread = self._output_thread, None
        if thread is not None:
            thread.join(timeout=1)
            if thread.is_alive():
                # a child of the daemon still holds the pipe; the thread closes it at EOF
                return
        if process.stdout is not None:
            process.stdout.close()

    def _force_kill(self, process: subprocess.Popen) -> int:
        pid = process.pid
        try:
            result = self.privileged.run(["kill", "-9", str(pid)])
        except OSError as e:
            raise DaemonError("stop", f"cannot signal daemon (pid {pid}): {e}") from e

        if not result.ok:
            log_with_prefix(self.logger, "kill", result.output)
            raise DaemonError("stop", f"kill -9 {pid} exited with code {result.returncode}")

        try:
            return process.wait(timeout=self.config.stop_timeout)
        except subprocess.TimeoutExpired as e:
            raise DaemonError("stop", f"daemon (pid {pid}) still running after kill -9") from e

    def _abandon(self) -> None:
        """Tear down a daemon that never became ready"""
        if self.process is None:
            return
        if self.process.poll() is not None:
            self._release()
            return
        try:
            self.stop()
        except DaemonError as e:
            self.logger.error(f"Failed to stop daemon after failed start: {e}")

    def _forward_output(self, process: subprocess.Popen) -> None:
        """Forward daemon output to the logger until the pipe closes"""
        if process.stdout is None:
            return
        with process.stdout:
            for line in process.stdout:
                log_with_prefix(self.logger, "dockerd", line)

    def _wait_for_start(self, cancel: Optional[threading.Event] = None) -> None:
        """
        Poll "docker info" with exponential backoff until the daemon answers

        Raises:
            DaemonError: The daemon process exited first
            DaemonTimeoutError: start_timeout elapsed
            DaemonCancelledError: cancel was set
        """
        deadline = time.monotonic() + self.config.start_timeout
        delay = self.config.retry_interval
        attempt = 0
        last_output = ""

        while True:
            if cancel is not None and cancel.is_set():
                raise DaemonCancelledError("start", "readiness wait cancelled")

            attempt += 1
            ready, last_output = self._check_ready()
            if ready:
                self.logger.info(f"Docker daemon ready (attempt {attempt})")
                return

            if self.process is not None:
                code = self.process.poll()
                if code is not None:
                    log_with_prefix(self.logger, "docker", last_output)
                    raise DaemonError("start", f"daemon exited with code {code} before becoming ready")

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                log_with_prefix(self.logger, "docker", last_output)
                raise DaemonTimeoutError(self.config.start_timeout, last_output)

            wait = min(delay, remaining)
            if cancel is not None:
                if cancel.wait(wait):
                    raise DaemonCancelledError("start", "readiness wait cancelled")
            else:
                time.sleep(wait)
            delay = min(delay * 2, self.config.retry_max_interval)

    def _check_ready(self) -> Tuple[bool, str]:
        """Run one "docker info" against the socket"""
        args = [self.config.executable, "-H", self.socket, "info"]
        try:
            result = self.executor.run(args, timeout=self.config.info_timeout)
        except subprocess.TimeoutExpired:
            return False, f"docker info timed out after {self.config.info_timeout:g}s"
        except OSError as e:
            raise CommandError("start", args) from e
        return result.ok, result.output

    def _ensure_bridge(self) -> None:
        """Create and bring up the bridge device unless it already exists"""
        bridge = self.config.bridge
        try:
            exists = self.executor.run(["ip", "link", "show", bridge]).ok
        except OSError as e:
            self.logger.warning(f"Could not query bridge device {bridge}: {e}")
            exists = False

        if exists:
            self.logger.info(f"Bridge device {bridge} exists")
            return

        self.logger.info(f"Creating bridge device {bridge} ({self.config.cidr})")
        self._run_privileged("bridge", ["brctl", "addbr", bridge])
        self._run_privileged("bridge", ["ip", "addr", "add", self.config.cidr, "dev", bridge])
        self._run_privileged("bridge", ["ip", "link", "set", "dev", bridge, "up"])

    def pull(self, *images: str) -> None:
        """
        Pull images one at a time, in order

        Raises:
            CommandError: A pull failed; later images are not attempted
        """
        for image in images:
            self._run_command("pull", ["pull", image])

    def run(self, *args: str) -> str:
        """
        Execute "docker run" with args

        Args:
            *args: Arguments after "run", e.g. "-d", "busybox", "sleep", "60"

        Returns:
            str: Trimmed stdout, the ID of the new container for detached runs

        Raises:
            CommandError: docker exited non-zero or could not be invoked
        """
        result = self._run_command("run", ["run", *args])
        log_with_prefix(self.logger, "docker", result.output)
        return result.stdout.strip()

    def remove(self, ref: str) -> None:
        self._run_command("remove", ["rm", "-f", ref])

    def kill(self, ref: str) -> None:
        self._run_command("kill", ["kill", ref])

    def list(self, filter_expr: str = "") -> List[str]:
        """
        List IDs of running containers

        Args:
            filter_expr: Value for "--filter", e.g. "label=e2e"; "" lists all

        Returns:
            List[str]: Container IDs in the order docker printed them
        """
        args = ["ps", "-q"]
        if filter_expr:
            args.extend(["--filter", filter_expr])
        result = self._run_command("list", args)

        return [tag.strip() for tag in result.stdout.split("\n") if tag.strip()]

    def client(self) -> docker.DockerClient:
        """Engine API client bound to the same socket as the CLI calls"""
        return docker.DockerClient(base_url=self.socket)

    def _run_command(self, operation: str, args: Sequence[str]) -> CommandResult:
        argv = [self.config.executable, "-H", self.socket, *args]
        self.logger.info(f"docker {argv[1:]}")

        try:
            result = self.executor.run(argv)
        except OSError as e:
            self.logger.error(f"Failed to run docker: {e}")
            raise CommandError(operation, argv) from e

        if not result.ok:
            log_with_prefix(self.logger, "docker", result.output)
            self.logger.error(f"docker returned exit code {result.returncode}")
            raise CommandError(operation, result.args, result.returncode, result.output)

        return result

    def _run_privileged(self, operation: str, args: Sequence[str]) -> CommandResult:
        try:
            result = self.privileged.run(args)
        except OSError as e:
            raise CommandError(operation, list(args)) from e

        if not result.ok:
            log_with_prefix(self.logger, args[0], result.output)
            raise CommandError(operation, result.args, result.returncode, result.output)

        return result

    def __enter__(self):
        """Context manager entry"""
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit"""
        self.stop()


def new_docker(logger: Optional[logging.Logger] = None) -> DaemonController:
    """Controller for the default daemon already running on the host"""
    return DaemonController(DaemonConfig(), logger=logger)
