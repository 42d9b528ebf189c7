"""Subprocess execution with Result-based error handling.

Job steps run their commands through ``run`` so a step never raises: a
non-zero exit, a timeout, an operator cancellation or a missing executable
all come back as ``Err(ProcessError)``.

Usage:
    result = run_shell("cargo build --release", cwd=workdir, timeout=600)
    match result:
        case Ok(stdout):
            print(stdout)
        case Err(error) if error.timed_out:
            print("build timed out")
        case Err(error):
            print(f"Failed: {error.stderr}")
"""

from __future__ import annotations

import os
import signal
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from time import monotonic

from shipline.core.result import Err, Ok, Result

__all__ = ["ProcessError", "run", "run_shell"]

# How often a running command checks for cancellation.
_POLL_INTERVAL_SECONDS = 0.2

_POSIX = os.name == "posix"


@dataclass(frozen=True, slots=True)
class ProcessError:
    """Error from a failed subprocess execution.

    Attributes:
        command: The command that was executed.
        returncode: Exit code, or -1 when the process could not run to completion.
        stdout: Standard output (may be empty).
        stderr: Standard error (contains error details).
        timed_out: The process was killed because its time budget ran out.
        cancelled: The process was killed because the run was cancelled.
    """

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False
    cancelled: bool = False

    def __str__(self) -> str:
        cmd_str = " ".join(self.command[:3])
        if len(self.command) > 3:
            cmd_str += " ..."
        return f"{cmd_str} failed (exit {self.returncode})"


def _kill(proc: subprocess.Popen[str]) -> tuple[str, str]:
    # Shell commands spawn children that hold the pipes open; kill the group.
    if _POSIX:
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
    else:
        proc.kill()
    stdout, stderr = proc.communicate()
    return stdout or "", stderr or ""


def run(
    cmd: list[str] | str,
    cwd: Path,
    env: dict[str, str] | None = None,
    *,
    timeout: float | None = None,
    cancel: threading.Event | None = None,
    shell: bool = False,
) -> Result[str, ProcessError]:
    """Execute a command and return stdout or error.

    Args:
        cmd: Command and arguments, or a command line when ``shell`` is set.
        cwd: Working directory for the command.
        env: Environment variables (uses current env if None).
        timeout: Maximum seconds to wait (None for no limit).
        cancel: When set while the command runs, the process is killed.
        shell: Run ``cmd`` through the platform shell.

    Returns:
        Ok(stdout) on success, Err(ProcessError) on failure.
    """
    command = (cmd,) if isinstance(cmd, str) else tuple(cmd)
    try:
        proc = subprocess.Popen(
            cmd,
            cwd=str(cwd),
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            shell=shell,
            start_new_session=_POSIX,
        )
    except OSError as e:
        return Err(ProcessError(command=command, returncode=-1, stdout="", stderr=str(e)))

    deadline = None if timeout is None else monotonic() + timeout
    while True:
        wait = _POLL_INTERVAL_SECONDS
        if deadline is not None:
            remaining = deadline - monotonic()
            if remaining <= 0:
                stdout, _ = _kill(proc)
                return Err(
                    ProcessError(
                        command=command,
                        returncode=-1,
                        stdout=stdout,
                        stderr=f"Command timed out after {timeout}s",
                        timed_out=True,
                    )
                )
            wait = min(wait, remaining)

        if cancel is not None and cancel.is_set():
            stdout, _ = _kill(proc)
            return Err(
                ProcessError(
                    command=command,
                    returncode=-1,
                    stdout=stdout,
                    stderr="Command cancelled",
                    cancelled=True,
                )
            )

        try:
            stdout, stderr = proc.communicate(timeout=wait)
            break
        except subprocess.TimeoutExpired:
            continue

    if proc.returncode != 0:
        return Err(
            ProcessError(
                command=command,
                returncode=proc.returncode,
                stdout=stdout,
                stderr=stderr,
            )
        )

    return Ok(stdout)


def run_shell(
    command: str,
    cwd: Path,
    env: dict[str, str] | None = None,
    *,
    timeout: float | None = None,
    cancel: threading.Event | None = None,
) -> Result[str, ProcessError]:
    """Execute a command line through the platform shell."""
    return run(command, cwd, env, timeout=timeout, cancel=cancel, shell=True)
