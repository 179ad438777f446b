"""Top-level wiring of the driver deployment.

Builds the run context from settings, maps each pipeline stage to its body,
and turns termination signals into the same teardown path a failing stage
takes.
"""

from __future__ import annotations

import signal
import threading
import time
from functools import partial
from typing import Callable, Optional

from kmod_deployer.config.settings import DeployerSettings
from kmod_deployer.core.actions import ActionStack
from kmod_deployer.core.pipeline import StageHandler, StageRunner
from kmod_deployer.core.process_lock import ProcessLock
from kmod_deployer.core.retry import RetryableRunner
from kmod_deployer.domain.models import DeploymentContext, DriverSpec, Stage
from kmod_deployer.exceptions import DeploymentInterrupted
from kmod_deployer.logging import LoggerFactory
from kmod_deployer.stages import (
    backup_existing_driver,
    check_dependencies,
    compile_driver,
    fetch_source,
    install_driver,
    load_driver_module,
    validate_platform,
    verify_driver_operation,
)
from kmod_deployer.system import probes
from kmod_deployer.stages.source import CloneFailed
from kmod_deployer.system.commands import CommandRunner, SubprocessRunner


log = LoggerFactory.for_pipeline()

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)


class Deployer:
    def __init__(
        self,
        settings: DeployerSettings,
        *,
        debug: bool = False,
        runner: Optional[CommandRunner] = None,
        sleep: Callable[[float], None] = time.sleep,
        kernel_release: Optional[str] = None,
        machine: Optional[str] = None,
    ):
        self.settings = settings
        self.debug = debug
        self.runner = runner or SubprocessRunner()
        self.sleep = sleep
        self.kernel_release = kernel_release or probes.kernel_release()
        self.machine = machine or probes.machine()
        self.stage_runner: Optional[StageRunner] = None

    def build_context(self) -> DeploymentContext:
        driver = DriverSpec(
            module_name=self.settings.module_name,
            version=self.settings.driver_version,
            repo_url=self.settings.repo_url,
            branch=self.settings.repo_branch,
        )
        return DeploymentContext(
            driver=driver,
            settings=self.settings,
            runner=self.runner,
            actions=ActionStack(),
            kernel_release=self.kernel_release,
            machine=self.machine,
            log_file=self.settings.log_file,
            debug=self.debug,
        )

    def stage_handlers(self) -> dict[Stage, StageHandler]:
        retry = RetryableRunner(
            sleep=self.sleep, name="clone", retry_on=(CloneFailed,)
        )
        return {
            Stage.PLATFORM_VALIDATION: validate_platform,
            Stage.DEPENDENCY_CHECK: check_dependencies,
            Stage.BACKUP: backup_existing_driver,
            Stage.FETCH: partial(fetch_source, retry=retry),
            Stage.COMPILE: compile_driver,
            Stage.INSTALL: install_driver,
            Stage.MODULE_LOAD: load_driver_module,
            Stage.OPERATIONAL_VERIFICATION: verify_driver_operation,
        }

    def run(self) -> int:
        """Deploy the driver and return the process exit code."""
        context = self.build_context()
        self.stage_runner = StageRunner(
            context,
            ProcessLock(self.settings.lock_file),
            self.stage_handlers(),
        )
        previous = self._install_signal_handlers()
        try:
            return self.stage_runner.run()
        finally:
            self._restore_signal_handlers(previous)

    def _handle_signal(self, signum, _frame) -> None:
        name = signal.Signals(signum).name
        if self.stage_runner is not None and self.stage_runner.tearing_down:
            log.warning(f"Received {name} during teardown, finishing teardown first")
            return
        raise DeploymentInterrupted(signum, name)

    def _install_signal_handlers(self) -> dict:
        if threading.current_thread() is not threading.main_thread():
            return {}
        previous = {}
        for signum in HANDLED_SIGNALS:
            previous[signum] = signal.getsignal(signum)
            signal.signal(signum, self._handle_signal)
        return previous

    @staticmethod
    def _restore_signal_handlers(previous: dict) -> None:
        for signum, handler in previous.items():
            if handler is not None:
                signal.signal(signum, handler)
