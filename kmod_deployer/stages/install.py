"""Installing the compiled module into the system module tree."""

from __future__ import annotations

from kmod_deployer.domain.models import DeploymentContext
from kmod_deployer.exceptions import InstallError
from kmod_deployer.logging import LoggerFactory
from kmod_deployer.system.commands import describe_failure


log = LoggerFactory.for_stage("install")


def supports_dkms(ctx: DeploymentContext) -> bool:
    return ctx.source_dir is not None and (ctx.source_dir / "dkms.conf").is_file()


def refresh_initramfs(ctx: DeploymentContext) -> bool:
    """Rebuild the initramfs if the host has update-initramfs.

    The running session does not need it, so any problem is only a warning.
    """
    if ctx.runner.which("update-initramfs") is None:
        log.debug("update-initramfs not available, skipping initramfs refresh")
        return False
    result = ctx.runner.run(ctx.privileged(["update-initramfs", "-u", "-k", "all"]))
    if result.returncode != 0:
        message = f"initramfs refresh failed: {describe_failure(result)}"
        ctx.warnings.append(message)
        log.warning(message)
        return False
    log.info("initramfs refreshed")
    return True


def install_driver(ctx: DeploymentContext) -> None:
    if ctx.source_dir is None:
        raise InstallError("No compiled driver source available to install")

    log.info("Installing driver module")
    if supports_dkms(ctx):
        target, label = "dkmsinstall", "DKMS"
    else:
        target, label = "install", "Manual"

    result = ctx.runner.run(ctx.privileged(["make", target]), cwd=ctx.source_dir)
    if result.returncode != 0:
        raise InstallError(
            f"{label} installation failed: {describe_failure(result)}",
            exit_code=result.returncode,
        )
    log.success(f"{label} installation completed")

    refresh_initramfs(ctx)
