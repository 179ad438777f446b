"""Platform validation: kernel release, architecture and secure boot."""

from __future__ import annotations

import re

from kmod_deployer.domain.models import DeploymentContext
from kmod_deployer.exceptions import UnsupportedPlatformError
from kmod_deployer.logging import LoggerFactory
from kmod_deployer.system import probes


log = LoggerFactory.for_stage("platform_validation")

KERNEL_RELEASE_PATTERN = re.compile(r"^\d+\.\d+\.\d+")


def check_kernel_release(kernel_release: str) -> None:
    if not KERNEL_RELEASE_PATTERN.match(kernel_release or ""):
        raise UnsupportedPlatformError(
            f"Unsupported kernel version: {kernel_release or '(empty)'}"
        )


def check_architecture(machine: str, supported: tuple[str, ...]) -> None:
    if machine not in supported:
        raise UnsupportedPlatformError(
            f"Unsupported architecture: {machine or '(empty)'} "
            f"(supported: {', '.join(supported)})"
        )


def secure_boot_enabled(ctx: DeploymentContext) -> bool:
    """Best-effort secure boot detection through mokutil.

    Returns False whenever the state cannot be determined.
    """
    if not ctx.settings.efi_dir.is_dir():
        return False
    if ctx.runner.which("mokutil") is None:
        log.debug("mokutil not available, skipping secure boot check")
        return False
    result = ctx.runner.run(["mokutil", "--sb-state"])
    return "enabled" in (result.stdout or "").lower()


def validate_platform(ctx: DeploymentContext) -> None:
    log.info("Validating platform compatibility")

    check_kernel_release(ctx.kernel_release)
    check_architecture(ctx.machine, ctx.settings.supported_architectures)

    os_release = probes.read_os_release(ctx.settings.os_release)
    if os_release:
        name = os_release.get("NAME", "unknown")
        version_id = os_release.get("VERSION_ID", "")
        log.info(f"Detected distribution: {name} {version_id}".rstrip())

    if secure_boot_enabled(ctx):
        message = "Secure Boot is enabled - driver signing may be required"
        ctx.warnings.append(message)
        log.warning(message)

    log.success(
        f"Platform validation passed (kernel {ctx.kernel_release}, {ctx.machine})"
    )
