"""tcsignal.executor - Run the user's readiness command through the shell.

A non-zero exit is a normal result here, not an error. Only a failure to
start the shell itself is reported as a launch error.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
from typing import Optional, Protocol, Tuple

from tcsignal.deadline import Deadline
from tcsignal.errors import DeadlineExceeded

logger = logging.getLogger(__name__)

DEFAULT_SHELL = "sh"
KILL_GRACE_SECONDS = 2.0


class Executor(Protocol):
    def run(self, command_line: str, deadline: Optional[Deadline] = None) -> Tuple[int, Optional[Exception]]:
        ...


def _exit_code(returncode: int) -> int:
    # Killed by signal N shows up as -N; report it the way a shell would.
    if returncode < 0:
        return 128 + (-returncode)
    return returncode


class ShellExecutor:
    """Runs ``<shell> -c <command_line>`` with the parent's stdout/stderr."""

    def __init__(self, shell: str = DEFAULT_SHELL, kill_grace: float = KILL_GRACE_SECONDS):
        self.shell = shell
        self.kill_grace = kill_grace

    def run(self, command_line: str, deadline: Optional[Deadline] = None) -> Tuple[int, Optional[Exception]]:
        """Return ``(exit_code, launch_error)``.

        When ``deadline`` expires while the command is running, the whole
        process group is terminated and ``DeadlineExceeded`` is raised.
        """
        logger.debug("Executing command", extra={"command": command_line})
        try:
            proc = subprocess.Popen([self.shell, "-c", command_line], start_new_session=True)
        except OSError as exc:
            logger.debug("Shell could not be launched: %s", exc)
            return -1, exc

        try:
            returncode = proc.wait(timeout=deadline.remaining() if deadline else None)
        except subprocess.TimeoutExpired:
            self._terminate(proc)
            raise DeadlineExceeded(f"command did not finish before the overall timeout: {command_line}")

        return _exit_code(returncode), None

    def _terminate(self, proc: subprocess.Popen) -> None:
        logger.warning("Overall timeout reached; terminating command process group", extra={"pid": proc.pid})
        for sig in (signal.SIGTERM, signal.SIGKILL):
            try:
                os.killpg(proc.pid, sig)
            except ProcessLookupError:
                return
            try:
                proc.wait(timeout=self.kill_grace)
                return
            except subprocess.TimeoutExpired:
                continue
