"""
Subprocess runner for the external measurement tools.

Every tool invocation goes through ``CommandRunner.run``: the binary is
resolved on PATH first, the child runs with ``LC_ALL=C`` so numbers print
with a dot, and it is killed when the timeout expires. Live children are
tracked so a whole run can be aborted with ``terminate_all``.
"""

import os
import shlex
import shutil
import subprocess
import threading
from dataclasses import dataclass
from typing import Optional, Sequence, Set

from analit.utils.errors import MeasurementError, ToolNotFoundError
from analit.utils.logging import get_logger


@dataclass(frozen=True)
class CommandResult:
    """Exit status and captured streams of one tool invocation."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        """Both streams; ffmpeg prints its filter reports on stderr."""
        return self.stdout + self.stderr


class CommandRunner:
    """Runs external tools with a per-call timeout."""

    def __init__(self, timeout: Optional[float] = 600.0):
        """
        Args:
            timeout: Seconds before a child is killed (None waits forever)
        """
        self.timeout = timeout
        self.logger = get_logger('providers.runner')
        self._lock = threading.Lock()
        self._live: Set[subprocess.Popen] = set()
        self._terminated: Set[subprocess.Popen] = set()

    def available(self, binary: str) -> bool:
        """Whether ``binary`` can be found on PATH (or is an existing path)."""
        return shutil.which(binary) is not None

    def run(self, binary: str, args: Sequence[str], check: bool = False) -> CommandResult:
        """
        Run ``binary`` with ``args`` and capture its output.

        Args:
            binary: Executable name or path
            args: Arguments (never passed through a shell)
            check: Raise on a non-zero exit status

        Raises:
            ToolNotFoundError: If the binary cannot be located
            MeasurementError: On timeout, launch failure, termination, or
                (with check) non-zero exit
        """
        executable = shutil.which(binary)
        if executable is None:
            raise ToolNotFoundError(binary)

        cmd = [executable, *[str(arg) for arg in args]]
        showcmd = shlex.join(cmd)
        self.logger.debug(f"CMD: {showcmd}")

        env = dict(os.environ, LC_ALL="C")
        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                env=env,
            )
        except OSError as e:
            raise MeasurementError(
                f"Failed to launch {binary}: {e}",
                probe_name=binary,
                original_error=e
            ) from e

        with self._lock:
            self._live.add(proc)
        try:
            stdout, stderr = proc.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            proc.kill()
            proc.communicate()
            raise MeasurementError(
                f"{binary} timed out after {self.timeout}s",
                probe_name=binary,
                original_error=e
            ) from e
        finally:
            with self._lock:
                self._live.discard(proc)
                terminated = proc in self._terminated
                self._terminated.discard(proc)

        if terminated:
            raise MeasurementError(f"{binary} was terminated", probe_name=binary)

        result = CommandResult(proc.returncode, stdout or "", stderr or "")
        if check and result.returncode != 0:
            raise MeasurementError(
                f"Command failed ({result.returncode}): {showcmd}\n{result.stderr.strip()[-2000:]}",
                probe_name=binary
            )
        return result

    def terminate_all(self) -> int:
        """
        Kill every child that is still running and reap it.

        The ``run`` calls waiting on those children raise MeasurementError.

        Returns:
            int: Number of children killed
        """
        with self._lock:
            procs = list(self._live)
            self._terminated.update(procs)

        for proc in procs:
            proc.kill()
        for proc in procs:
            try:
                proc.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self.logger.warning(f"pid {proc.pid} did not exit after kill")

        if procs:
            self.logger.debug(f"Terminated {len(procs)} running tool(s)")
        return len(procs)
