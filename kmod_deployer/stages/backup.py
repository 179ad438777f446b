"""Backup of an existing driver installation and its restoration on rollback."""

from __future__ import annotations

import shutil
from datetime import datetime
from pathlib import Path

from kmod_deployer.domain.models import ActionPhase, BackupRecord, DeploymentContext
from kmod_deployer.exceptions import RestoreError
from kmod_deployer.logging import LoggerFactory
from kmod_deployer.system.commands import describe_failure


log = LoggerFactory.for_stage("backup")

DKMS_STATUS_FILENAME = "dkms-status.txt"


def installed_module_path(ctx: DeploymentContext) -> Path | None:
    """Path of the currently installed module binary, if any."""
    result = ctx.runner.run(["modinfo", "-n", ctx.driver.module_name])
    if result.returncode != 0:
        return None
    value = (result.stdout or "").strip()
    if not value:
        return None
    path = Path(value)
    return path if path.is_file() else None


def dkms_status_lines(ctx: DeploymentContext) -> list[str]:
    result = ctx.runner.run(["dkms", "status"])
    if result.returncode != 0:
        return []
    return [
        line
        for line in (result.stdout or "").splitlines()
        if ctx.driver.module_name in line
    ]


def create_backup(ctx: DeploymentContext) -> BackupRecord:
    """Snapshot the installed module and its DKMS registration."""
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    backup_path = ctx.settings.backup_dir / f"backup-{timestamp}"
    backup_path.mkdir(parents=True, exist_ok=True)

    module_copy = None
    module_path = installed_module_path(ctx)
    if module_path is not None:
        module_copy = backup_path / ctx.driver.module_filename
        shutil.copy2(module_path, module_copy)
        log.info(f"Saved module binary {module_path}")

    status_file = None
    status_lines = dkms_status_lines(ctx)
    if status_lines:
        status_file = backup_path / DKMS_STATUS_FILENAME
        status_file.write_text("\n".join(status_lines) + "\n", encoding="utf-8")
        log.info(f"Saved DKMS status ({len(status_lines)} entries)")

    return BackupRecord(
        root=backup_path,
        timestamp=timestamp,
        has_module=module_copy is not None,
        has_dkms_entry=status_file is not None,
        module_file=module_copy,
        dkms_status_file=status_file,
    )


def restore_backup(ctx: DeploymentContext, record: BackupRecord) -> None:
    """Put a saved module binary back in the module tree.

    The module tree is root-owned, so every step runs through the
    privileged runner.

    Raises:
        RestoreError: A restore command failed and the previous state is
            not fully back in place
    """
    if record.is_empty:
        log.info("No previous driver installation to restore")
        return

    log.info(f"Restoring from backup: {record.root}")
    if record.has_dkms_entry and record.dkms_status_file is not None:
        log.info(f"Previous DKMS registration recorded in {record.dkms_status_file}")
    if record.has_module and record.module_file is not None:
        target = (
            ctx.settings.modules_root
            / ctx.kernel_release
            / "updates"
            / "dkms"
            / ctx.driver.module_filename
        )
        commands = [
            ["mkdir", "-p", str(target.parent)],
            ["cp", "-f", str(record.module_file), str(target)],
            ["depmod", "-a"],
        ]
        for command in commands:
            result = ctx.runner.run(ctx.privileged(command))
            if result.returncode != 0:
                raise RestoreError(
                    f"Incomplete restore from {record.root}: "
                    f"{describe_failure(result)}",
                    exit_code=result.returncode,
                )

    log.success("Backup restored successfully")


def backup_existing_driver(ctx: DeploymentContext) -> BackupRecord:
    log.info("Backing up existing driver configuration")
    record = create_backup(ctx)
    ctx.backup = record
    ctx.actions.push(
        ActionPhase.ROLLBACK,
        f"restore backup {record.root}",
        lambda: restore_backup(ctx, record),
    )
    log.success(f"Backup completed: {record.root}")
    return record
