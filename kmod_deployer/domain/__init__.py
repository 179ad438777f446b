"""Domain models for driver deployment runs."""

from __future__ import annotations

from .models import (
    Action,
    ActionPhase,
    BackupRecord,
    DeploymentContext,
    DriverSpec,
    LockHandle,
    Stage,
    StageResult,
)


__all__ = [
    "Action",
    "ActionPhase",
    "BackupRecord",
    "DeploymentContext",
    "DriverSpec",
    "LockHandle",
    "Stage",
    "StageResult",
]
