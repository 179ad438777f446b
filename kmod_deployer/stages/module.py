"""Loading the installed module and confirming it is operational."""

from __future__ import annotations

from kmod_deployer.domain.models import DeploymentContext
from kmod_deployer.exceptions import ModuleLoadError, VerificationError
from kmod_deployer.logging import LoggerFactory
from kmod_deployer.system import probes
from kmod_deployer.system.commands import describe_failure


log = LoggerFactory.for_stage("module")


def unload_module(ctx: DeploymentContext) -> None:
    """Remove a running instance of the module. "Not loaded" is fine."""
    module_name = ctx.driver.module_name
    if not probes.is_module_loaded(ctx.settings.proc_modules, module_name):
        log.debug(f"Module {module_name} not loaded, nothing to unload")
        return
    result = ctx.runner.run(ctx.privileged(["modprobe", "-r", module_name]))
    if result.returncode != 0:
        log.warning(
            f"Unable to unload running {module_name}: {describe_failure(result)}"
        )


def load_driver_module(ctx: DeploymentContext) -> None:
    module_name = ctx.driver.module_name
    log.info("Loading driver module into kernel")
    unload_module(ctx)
    result = ctx.runner.run(ctx.privileged(["modprobe", module_name]))
    if result.returncode != 0:
        raise ModuleLoadError(
            module_name, describe_failure(result), exit_code=result.returncode
        )
    log.success("Driver module loaded successfully")


def verify_driver_operation(ctx: DeploymentContext) -> None:
    """Confirm the module is known to the system and loaded.

    A missing network interface is only a warning: the adapter may simply not
    be plugged in yet.
    """
    module_name = ctx.driver.module_name
    log.info("Validating driver operation")
    failed_checks = []

    if ctx.runner.run(["modinfo", module_name]).returncode != 0:
        log.error("Module not found in system")
        failed_checks.append("module metadata unavailable")

    if not probes.is_module_loaded(ctx.settings.proc_modules, module_name):
        log.error("Module not loaded into kernel")
        failed_checks.append("module not loaded")

    interfaces = probes.network_interfaces()
    if not interfaces:
        message = "No network interfaces detected"
        ctx.warnings.append(message)
        log.warning(message)
    else:
        log.debug(f"Network interfaces: {', '.join(interfaces)}")

    if failed_checks:
        raise VerificationError(module_name, failed_checks)
    log.success("Driver validation completed successfully")
