"""Domain model for driver deployment runs.

Type-safe objects shared by the pipeline, its stages and the action stack.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Optional

if TYPE_CHECKING:
    from kmod_deployer.config.settings import DeployerSettings
    from kmod_deployer.core.actions import ActionStack
    from kmod_deployer.system.commands import CommandRunner


# ==============================================================================
# Pipeline Domain
# ==============================================================================


class Stage(Enum):
    """Pipeline states in execution order."""

    LOCKING = "locking"
    PLATFORM_VALIDATION = "platform_validation"
    DEPENDENCY_CHECK = "dependency_check"
    BACKUP = "backup"
    FETCH = "fetch"
    COMPILE = "compile"
    INSTALL = "install"
    MODULE_LOAD = "module_load"
    OPERATIONAL_VERIFICATION = "operational_verification"
    DONE = "done"

    def next(self) -> Stage:
        """Return the state that follows this one.

        Raises:
            ValueError: If called on DONE
        """
        members = list(Stage)
        index = members.index(self)
        if index + 1 >= len(members):
            raise ValueError("DONE has no successor")
        return members[index + 1]

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


class ActionPhase(Enum):
    CLEANUP = "cleanup"
    ROLLBACK = "rollback"


@dataclass(frozen=True)
class Action:
    """A deferred operation registered on the action stack."""

    phase: ActionPhase
    description: str
    callback: Callable[[], Any]

    def __call__(self) -> Any:
        return self.callback()


@dataclass(frozen=True)
class StageResult:
    """Outcome of one pipeline stage."""

    stage: Stage
    succeeded: bool
    cause: str = ""
    error: Optional[BaseException] = None
    duration_seconds: float = 0.0

    @classmethod
    def success(cls, stage: Stage, duration_seconds: float = 0.0) -> StageResult:
        return cls(stage=stage, succeeded=True, duration_seconds=duration_seconds)

    @classmethod
    def failure(
        cls, stage: Stage, error: BaseException, duration_seconds: float = 0.0
    ) -> StageResult:
        return cls(
            stage=stage,
            succeeded=False,
            cause=str(error),
            error=error,
            duration_seconds=duration_seconds,
        )


# ==============================================================================
# Lock and Backup Domain
# ==============================================================================


@dataclass(frozen=True)
class LockHandle:
    """Exclusive ownership of the deployment process."""

    pid: int
    acquired_at: datetime
    path: Path


@dataclass(frozen=True)
class BackupRecord:
    """Snapshot of driver state taken before anything is modified.

    A record with neither flag set is still valid: restoring it does nothing.
    """

    root: Path
    timestamp: str
    has_module: bool = False
    has_dkms_entry: bool = False
    module_file: Optional[Path] = None
    dkms_status_file: Optional[Path] = None

    @property
    def is_empty(self) -> bool:
        return not (self.has_module or self.has_dkms_entry)


# ==============================================================================
# Driver Domain
# ==============================================================================


@dataclass(frozen=True)
class DriverSpec:
    """Identity of the driver being deployed."""

    module_name: str  # e.g., "88x2bu"
    version: str  # e.g., "20210702"
    repo_url: str
    branch: str = "master"

    @property
    def source_dir_name(self) -> str:
        return f"{self.module_name}-{self.version}"

    @property
    def module_filename(self) -> str:
        return f"{self.module_name}.ko"


@dataclass
class DeploymentContext:
    """State threaded through every stage of a single run."""

    driver: DriverSpec
    settings: DeployerSettings
    runner: CommandRunner
    actions: ActionStack
    kernel_release: str
    machine: str
    log_file: Path
    debug: bool = False
    temp_dir: Optional[Path] = None
    source_dir: Optional[Path] = None
    lock_handle: Optional[LockHandle] = None
    backup: Optional[BackupRecord] = None
    warnings: list[str] = field(default_factory=list)

    def privileged(self, args: list[str]) -> list[str]:
        """Prefix a command that needs root with sudo when configured."""
        if self.settings.use_sudo:
            return ["sudo", *args]
        return list(args)
