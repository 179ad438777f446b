"""Fetching and compiling the driver source."""

from __future__ import annotations

import shutil
import tempfile
from pathlib import Path
from typing import Optional

from kmod_deployer.core.retry import RetryableRunner
from kmod_deployer.domain.models import ActionPhase, DeploymentContext
from kmod_deployer.exceptions import BuildError, ExhaustedRetriesError, FetchExhaustedError
from kmod_deployer.logging import LoggerFactory
from kmod_deployer.system import probes
from kmod_deployer.system.commands import describe_failure


log = LoggerFactory.for_stage("source")


class CloneFailed(RuntimeError):
    """A single git clone attempt failed."""


def remove_tree(path: Path) -> None:
    if path.exists():
        shutil.rmtree(path)


def make_temp_dir(ctx: DeploymentContext) -> Path:
    """Create the run's scratch directory and schedule its removal."""
    root = ctx.settings.temp_root
    if root is not None:
        root.mkdir(parents=True, exist_ok=True)
    temp_dir = Path(
        tempfile.mkdtemp(
            prefix=f"{ctx.driver.module_name}-installer.",
            dir=str(root) if root is not None else None,
        )
    )
    ctx.temp_dir = temp_dir
    ctx.actions.push(
        ActionPhase.CLEANUP, f"remove {temp_dir}", lambda: remove_tree(temp_dir)
    )
    return temp_dir


def clone_command(ctx: DeploymentContext, target: Path) -> list[str]:
    return [
        "git",
        "clone",
        "--depth",
        "1",
        "--branch",
        ctx.driver.branch,
        ctx.driver.repo_url,
        str(target),
    ]


def fetch_source(
    ctx: DeploymentContext, retry: Optional[RetryableRunner] = None
) -> Path:
    """Clone the driver repository into a fresh temporary directory."""
    temp_dir = make_temp_dir(ctx)
    target = temp_dir / ctx.driver.source_dir_name
    retry = retry or RetryableRunner(name="clone", retry_on=(CloneFailed,))

    def attempt() -> Path:
        result = ctx.runner.run(clone_command(ctx, target))
        if result.returncode != 0:
            raise CloneFailed(describe_failure(result))
        return target

    def discard_partial_clone(_next_attempt: int) -> None:
        if target.exists():
            shutil.rmtree(target, ignore_errors=True)

    log.info(f"Cloning {ctx.driver.repo_url} ({ctx.driver.branch})")
    try:
        retry.run(
            attempt,
            max_attempts=ctx.settings.fetch_attempts,
            base_delay=ctx.settings.fetch_base_delay,
            before_retry=discard_partial_clone,
        )
    except ExhaustedRetriesError as error:
        reason = str(error.last_error) if error.last_error else ""
        raise FetchExhaustedError(ctx.driver.repo_url, error.attempts, reason) from error

    ctx.source_dir = target
    log.success("Repository cloned successfully")
    return target


def compile_driver(ctx: DeploymentContext) -> None:
    source_dir = ctx.source_dir
    if source_dir is None:
        raise BuildError("No driver source available to compile")

    log.info("Compiling driver module")
    if not (source_dir / "Makefile").is_file():
        raise BuildError("Source validation failed: Makefile not found")

    result = ctx.runner.run(["make", f"-j{probes.build_jobs()}"], cwd=source_dir)
    if result.returncode != 0:
        raise BuildError(
            f"Driver compilation failed: {describe_failure(result)}",
            exit_code=result.returncode,
        )
    log.success("Driver compilation completed")
