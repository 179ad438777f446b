"""Build dependency resolution through dpkg/apt."""

from __future__ import annotations

from kmod_deployer.domain.models import DeploymentContext
from kmod_deployer.exceptions import DependencyInstallError
from kmod_deployer.logging import LoggerFactory
from kmod_deployer.system.commands import describe_failure


log = LoggerFactory.for_stage("dependency_check")


def required_dependencies(ctx: DeploymentContext) -> list[str]:
    """Package names required to build the driver for the running kernel."""
    packages = []
    for template in ctx.settings.build_dependencies:
        name = template.replace("{kernel}", ctx.kernel_release)
        if name not in packages:
            packages.append(name)
    return packages


def is_package_installed(ctx: DeploymentContext, package: str) -> bool:
    return ctx.runner.run(["dpkg", "-s", package]).returncode == 0


def missing_dependencies(ctx: DeploymentContext) -> list[str]:
    return [
        package
        for package in required_dependencies(ctx)
        if not is_package_installed(ctx, package)
    ]


def check_dependencies(ctx: DeploymentContext) -> None:
    log.info("Validating system dependencies")
    missing = missing_dependencies(ctx)
    if not missing:
        log.success("All dependencies satisfied")
        return

    log.info(f"Installing missing dependencies: {' '.join(missing)}")
    update = ctx.runner.run(ctx.privileged(["apt-get", "update", "-qq"]))
    if update.returncode != 0:
        raise DependencyInstallError(
            missing, describe_failure(update), exit_code=update.returncode
        )
    install = ctx.runner.run(
        ctx.privileged(
            ["apt-get", "install", "-y", "--no-install-recommends", *missing]
        )
    )
    if install.returncode != 0:
        raise DependencyInstallError(
            missing, describe_failure(install), exit_code=install.returncode
        )
    log.success(f"Installed {len(missing)} missing dependencies")
