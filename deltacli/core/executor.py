"""Shell command execution with timeouts."""

import logging
import os
import signal
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union

logger = logging.getLogger(__name__)

DEFAULT_LONG_RUNNING_PATTERNS = (
    "npm install",
    "yarn install",
    "pip install",
    "cargo build",
    "mvn install",
)


@dataclass
class ExecutionResult:
    """Outcome of one spawned command."""

    command: str
    success: bool
    exit_code: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    error_message: Optional[str] = None
    timed_out: bool = False


def is_long_running(command: str, patterns: Sequence[str] = DEFAULT_LONG_RUNNING_PATTERNS) -> bool:
    """Installer-style commands get the terminal and a longer timeout."""
    return any(pattern in command for pattern in patterns)


def _kill_process_group(process: subprocess.Popen) -> None:
    try:
        if os.name == "posix":
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()
    except (ProcessLookupError, PermissionError):
        process.kill()


def run_command(
    command: str,
    cwd: Union[str, Path],
    timeout: float = 30,
    capture: bool = True,
) -> ExecutionResult:
    """
    Run ``command`` through the shell in ``cwd``.

    With ``capture`` the output is collected; otherwise the child inherits
    the terminal. On timeout the child's whole process group is killed.
    """
    logger.info("Executing: %s (cwd=%s, timeout=%ss)", command, cwd, timeout)
    pipe = subprocess.PIPE if capture else None

    try:
        process = subprocess.Popen(
            command,
            shell=True,
            cwd=str(cwd),
            stdout=pipe,
            stderr=pipe,
            text=True,
            encoding="utf-8",
            errors="replace",
            start_new_session=(os.name == "posix"),
        )
    except OSError as e:
        return ExecutionResult(
            command=command,
            success=False,
            error_message=f"Could not start command: {e}",
        )

    try:
        stdout, stderr = process.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        _kill_process_group(process)
        stdout, stderr = process.communicate()
        logger.warning("Command timed out after %ss: %s", timeout, command)
        return ExecutionResult(
            command=command,
            success=False,
            exit_code=None,
            stdout=stdout or "",
            stderr=stderr or "",
            error_message=f"Command timed out after {timeout}s",
            timed_out=True,
        )

    code = process.returncode
    if code != 0:
        return ExecutionResult(
            command=command,
            success=False,
            exit_code=code,
            stdout=stdout or "",
            stderr=stderr or "",
            error_message=f"Command failed with exit code: {code}",
        )

    return ExecutionResult(
        command=command,
        success=True,
        exit_code=0,
        stdout=stdout or "",
        stderr=stderr or "",
    )
