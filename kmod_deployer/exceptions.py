"""Custom exceptions for driver deployment.

This module defines a hierarchy of exceptions for the deployment pipeline so
each stage can report a specific, named failure.

Exception Hierarchy:
    DeployError (base)
        ├── AlreadyRunningError
        ├── UnsupportedPlatformError
        ├── DependencyInstallError
        ├── FetchExhaustedError
        ├── BuildError
        ├── InstallError
        ├── ModuleLoadError
        ├── VerificationError
        ├── RestoreError
        └── DeploymentInterrupted
    ExhaustedRetriesError

Every DeployError carries a ``kind`` (the name reported in the failure log
line), an optional ``stage`` and the process ``exit_code`` to terminate with.

Usage:
    from kmod_deployer.exceptions import BuildError

    if result.returncode != 0:
        raise BuildError("Driver compilation failed", exit_code=result.returncode)
"""

from __future__ import annotations


class DeployError(Exception):
    """Base exception for all deployment failures."""

    kind = "DeployFailure"

    def __init__(self, message: str, *, stage: str | None = None, exit_code: int = 1):
        self.stage = stage
        # A zero exit code would report success for a failed run.
        self.exit_code = exit_code or 1
        super().__init__(message)


class AlreadyRunningError(DeployError):
    """Another orchestrator instance holds the process lock."""

    kind = "AlreadyRunning"

    def __init__(self, pid: int | None, lock_path: str = ""):
        self.pid = pid
        self.lock_path = lock_path
        holder = pid if pid is not None else "unknown"
        super().__init__(
            f"Installer already running (PID: {holder})", stage="locking"
        )


class UnsupportedPlatformError(DeployError):
    """Kernel release or CPU architecture is not supported."""

    kind = "UnsupportedPlatform"

    def __init__(self, message: str):
        super().__init__(message, stage="platform_validation")


class DependencyInstallError(DeployError):
    """Missing build dependencies could not be installed."""

    kind = "DependencyInstallFailure"

    def __init__(self, packages: list[str], reason: str = "", exit_code: int = 1):
        self.packages = list(packages)
        self.reason = reason
        msg = f"Failed to install dependencies: {' '.join(self.packages)}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, stage="dependency_check", exit_code=exit_code)


class FetchExhaustedError(DeployError):
    """Driver source could not be fetched within the retry budget."""

    kind = "FetchExhausted"

    def __init__(self, url: str, attempts: int, reason: str = ""):
        self.url = url
        self.attempts = attempts
        msg = f"Failed to clone {url} after {attempts} attempts"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, stage="fetch")


class BuildError(DeployError):
    """Driver compilation failed or the source tree is not buildable."""

    kind = "BuildFailure"

    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message, stage="compile", exit_code=exit_code)


class InstallError(DeployError):
    """Driver installation into the module tree failed."""

    kind = "InstallFailure"

    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message, stage="install", exit_code=exit_code)


class ModuleLoadError(DeployError):
    """The kernel refused to load the installed module."""

    kind = "ModuleLoadFailure"

    def __init__(self, module_name: str, reason: str = "", exit_code: int = 1):
        self.module_name = module_name
        msg = f"Failed to load driver module {module_name}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, stage="module_load", exit_code=exit_code)


class VerificationError(DeployError):
    """The installed module could not be confirmed operational."""

    kind = "VerificationFailure"

    def __init__(self, module_name: str, failed_checks: list[str]):
        self.module_name = module_name
        self.failed_checks = list(failed_checks)
        super().__init__(
            f"Driver validation failed for {module_name}: "
            f"{', '.join(self.failed_checks)}",
            stage="operational_verification",
        )


class RestoreError(DeployError):
    """A backup could not be put back during rollback."""

    kind = "RestoreFailure"

    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message, stage="rollback", exit_code=exit_code)


class DeploymentInterrupted(DeployError):
    """An external termination signal arrived during the run."""

    kind = "Interrupted"

    def __init__(self, signum: int, signal_name: str = ""):
        self.signum = signum
        name = signal_name or f"signal {signum}"
        super().__init__(f"Received {name}", exit_code=128 + signum)


class ExhaustedRetriesError(Exception):
    """An operation kept failing until its attempt budget ran out."""

    def __init__(self, attempts: int, last_error: BaseException | None = None):
        self.attempts = attempts
        self.last_error = last_error
        msg = f"Operation failed after {attempts} attempts"
        if last_error is not None:
            msg += f": {last_error}"
        super().__init__(msg)
