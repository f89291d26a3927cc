"""Subprocess boundary for probes.

``CommandRunner.run`` is the single place where external tools are spawned.
Missing executables, timeouts, OS errors and cancellation are reported on the
returned ``CommandResult`` rather than raised.
"""

from __future__ import annotations

import os
import shutil
import signal
import subprocess
import threading
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum

from preflight_validator.probes.models import DEFAULT_PROBE_TIMEOUT_SECONDS
from preflight_validator.probes.parsing import decode_output
from preflight_validator.utilities.logging_patterns import get_logger

logger = get_logger(__name__, component="command")

_IS_WINDOWS = os.name == "nt"
KILL_GRACE_SECONDS = 1.0


class CommandError(str, Enum):
    TOOL_MISSING = "tool_missing"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    OS_ERROR = "os_error"


@dataclass(frozen=True)
class CommandResult:
    argv: tuple[str, ...]
    returncode: int | None = None
    stdout: str = ""
    stderr: str = ""
    error: CommandError | None = None
    error_message: str = ""
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None and self.returncode == 0

    @property
    def output(self) -> str:
        """Combined stdout/stderr, as a human would have seen it."""
        parts = [part for part in (self.stdout, self.stderr) if part]
        return "\n".join(parts)

    def describe_failure(self) -> str:
        command = " ".join(self.argv)
        if self.error is CommandError.TOOL_MISSING:
            return f"'{self.argv[0]}' not found on PATH"
        if self.error is CommandError.TIMEOUT:
            return f"'{command}' timed out"
        if self.error is CommandError.CANCELLED:
            return f"'{command}' was cancelled"
        if self.error is CommandError.OS_ERROR:
            return f"'{command}' failed to start: {self.error_message}"
        return f"'{command}' exited with code {self.returncode}"


class CommandRunner:
    """Run external commands with a bounded timeout and cooperative cancellation.

    One runner is shared by all probes of a run. ``terminate_all`` kills every
    live child process so an interrupted run leaves no orphans behind.
    """

    def __init__(
        self,
        default_timeout: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.default_timeout = default_timeout
        self.cancel_event = cancel_event or threading.Event()
        self._active: set[subprocess.Popen[bytes]] = set()
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    def run(
        self,
        argv: Sequence[str],
        *,
        timeout: float | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        command = tuple(str(part) for part in argv)
        if not command:
            return CommandResult(
                argv=command, error=CommandError.OS_ERROR, error_message="empty command"
            )
        if self.cancelled:
            return CommandResult(argv=command, error=CommandError.CANCELLED)

        executable = shutil.which(command[0])
        if executable is None:
            logger.info("Executable not found", executable=command[0])
            return CommandResult(argv=command, error=CommandError.TOOL_MISSING)

        limit = self.default_timeout if timeout is None else timeout
        command_env = None
        if env:
            command_env = os.environ.copy()
            command_env.update(env)

        start = time.monotonic()
        try:
            process = subprocess.Popen(
                [executable, *command[1:]],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=command_env,
                **self._isolation_kwargs(),
            )
        except FileNotFoundError:
            return CommandResult(argv=command, error=CommandError.TOOL_MISSING)
        except OSError as exc:
            logger.warning("Command failed to start", command=" ".join(command), error=str(exc))
            return CommandResult(argv=command, error=CommandError.OS_ERROR, error_message=str(exc))

        with self._lock:
            self._active.add(process)
        if self.cancelled:
            self._kill(process)

        try:
            try:
                stdout, stderr = process.communicate(timeout=limit)
            except subprocess.TimeoutExpired:
                self._kill(process)
                stdout, stderr = self._drain_after_kill(process, command)
                logger.warning("Command timed out", command=" ".join(command), timeout_s=limit)
                return CommandResult(
                    argv=command,
                    returncode=process.poll(),
                    stdout=decode_output(stdout),
                    stderr=decode_output(stderr),
                    error=CommandError.TIMEOUT,
                    duration_ms=(time.monotonic() - start) * 1000,
                )
        finally:
            with self._lock:
                self._active.discard(process)

        duration_ms = (time.monotonic() - start) * 1000
        if self.cancelled:
            return CommandResult(
                argv=command,
                returncode=process.returncode,
                stdout=decode_output(stdout),
                stderr=decode_output(stderr),
                error=CommandError.CANCELLED,
                duration_ms=duration_ms,
            )
        return CommandResult(
            argv=command,
            returncode=process.returncode,
            stdout=decode_output(stdout),
            stderr=decode_output(stderr),
            duration_ms=duration_ms,
        )

    def terminate_all(self) -> int:
        """Cancel the run and kill every in-flight child process.

        Returns:
            Number of processes that were signalled.
        """
        self.cancel_event.set()
        with self._lock:
            processes = list(self._active)
        for process in processes:
            self._kill(process)
        if processes:
            logger.warning("Terminated in-flight commands", count=len(processes))
        return len(processes)

    @staticmethod
    def _isolation_kwargs() -> dict[str, object]:
        if _IS_WINDOWS:
            return {"creationflags": getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)}
        return {"start_new_session": True}

    @staticmethod
    def _kill(process: subprocess.Popen[bytes]) -> None:
        if _IS_WINDOWS:
            if process.poll() is not None:
                return
            # .cmd shims leave node.exe or python.exe behind unless the tree goes
            try:
                subprocess.run(
                    ["taskkill", "/T", "/F", "/PID", str(process.pid)],
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    timeout=KILL_GRACE_SECONDS,
                    check=False,
                )
            except (OSError, subprocess.TimeoutExpired) as exc:
                logger.warning("taskkill failed", pid=process.pid, error=str(exc))
            if process.poll() is None:
                process.kill()
            return
        try:
            # The child leads its own session; its group can outlive it
            os.killpg(process.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            pass

    @staticmethod
    def _drain_after_kill(
        process: subprocess.Popen[bytes], command: tuple[str, ...]
    ) -> tuple[bytes, bytes]:
        """Collect what the killed command wrote, waiting at most ``KILL_GRACE_SECONDS``."""
        try:
            return process.communicate(timeout=KILL_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            logger.warning(
                "Detached descendant still holds the output pipes", command=" ".join(command)
            )
        if not _IS_WINDOWS:
            # Windows reader threads own the pipes and are daemonic
            for stream in (process.stdout, process.stderr):
                if stream is not None:
                    stream.close()
        return b"", b""


__all__ = ["KILL_GRACE_SECONDS", "CommandError", "CommandResult", "CommandRunner"]
