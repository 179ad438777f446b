"""Subprocess execution behind a small capability interface.

Stages never call ``subprocess`` directly. They receive a ``CommandRunner``
so tests can substitute a fake that records calls and returns canned results.
"""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Optional, Protocol

from kmod_deployer.logging import LoggerFactory


log = LoggerFactory.for_system()


class CommandRunner(Protocol):
    def run(
        self, args: list[str], *, cwd: Optional[Path] = None
    ) -> subprocess.CompletedProcess[str]:
        ...

    def which(self, name: str) -> Optional[str]:
        ...


def validate_command_args(args: list[str]) -> None:
    """Validate command arguments before executing."""
    if not args or not all(isinstance(arg, str) and arg for arg in args):
        raise ValueError("Command args must be a non-empty list of strings.")


def run_command(
    args: list[str],
    *,
    cwd: Optional[Path] = None,
) -> subprocess.CompletedProcess[str]:
    """Run a command to completion and capture its output.

    A command that cannot be started is reported the way a shell would,
    instead of raising: exit status 127 when the executable is missing and
    126 when it exists but cannot be executed.
    """
    validate_command_args(args)
    cwd_display = str(cwd) if cwd else None
    log.debug(f"Running command: {args!r} cwd={cwd_display}")
    try:
        result = subprocess.run(
            args,
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError as error:
        log.debug(f"Command not found: {args[0]}")
        return subprocess.CompletedProcess(args, 127, stdout="", stderr=str(error))
    except OSError as error:
        log.debug(f"Command could not be executed: {args[0]}: {error}")
        return subprocess.CompletedProcess(args, 126, stdout="", stderr=str(error))
    log.debug(f"Command return code: {result.returncode}")
    log.debug(f"Command stdout: {result.stdout.strip()!r}")
    log.debug(f"Command stderr: {result.stderr.strip()!r}")
    return result


def describe_failure(result: subprocess.CompletedProcess[str]) -> str:
    """Pick the most useful diagnostic text from a failed command."""
    stderr = (result.stderr or "").strip()
    stdout = (result.stdout or "").strip()
    message = stderr or stdout or "Command failed"
    # Build tools print pages of output; the tail carries the error.
    lines = message.splitlines()
    if len(lines) > 5:
        message = "\n".join(lines[-5:])
    return message


class SubprocessRunner:
    """CommandRunner backed by the real host."""

    def run(
        self, args: list[str], *, cwd: Optional[Path] = None
    ) -> subprocess.CompletedProcess[str]:
        return run_command(list(args), cwd=cwd)

    def which(self, name: str) -> Optional[str]:
        return shutil.which(name)
