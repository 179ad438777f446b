"""Stage runner: the deployment pipeline as an explicit state machine.

States advance strictly in ``Stage`` order. The runner, not the individual
stages, owns the failure path: whatever stage raises, it drains the rollback
stack, then the cleanup stack, then releases the process lock.

    LOCKING -> PLATFORM_VALIDATION -> ... -> OPERATIONAL_VERIFICATION -> DONE
                        \\______________ any DeployError ______________/
                                            |
                              FAILED(stage, cause): rollback, cleanup, unlock
"""

from __future__ import annotations

import signal
import time
from typing import Any, Callable, Mapping, Optional

from kmod_deployer.core.process_lock import ProcessLock, describe_holder
from kmod_deployer.domain.models import (
    ActionPhase,
    DeploymentContext,
    Stage,
    StageResult,
)
from kmod_deployer.exceptions import (
    AlreadyRunningError,
    DeployError,
    DeploymentInterrupted,
)
from kmod_deployer.logging import LoggerFactory, stage_context


StageHandler = Callable[[DeploymentContext], Any]

# Stages the runner executes itself.
_BUILTIN_STAGES = (Stage.LOCKING, Stage.DONE)


class StageRunner:
    def __init__(
        self,
        context: DeploymentContext,
        lock: ProcessLock,
        handlers: Mapping[Stage, StageHandler],
    ):
        missing = [
            stage.value
            for stage in Stage
            if stage not in _BUILTIN_STAGES and stage not in handlers
        ]
        if missing:
            raise ValueError(f"No handler for stages: {', '.join(missing)}")
        self.context = context
        self.lock = lock
        self.handlers = dict(handlers)
        self.results: list[StageResult] = []
        self.state: Optional[Stage] = None
        self.failure: Optional[StageResult] = None
        self.tearing_down = False
        self.log = LoggerFactory.for_pipeline()
        self._stage_started = 0.0

    @property
    def actions(self):
        return self.context.actions

    def run(self) -> int:
        """Run every stage in order and return the process exit code."""
        stage = Stage.LOCKING
        try:
            self._enter(stage)
            self.context.lock_handle = self.lock.acquire()
            self._announce()
            stage = stage.next()
            while stage is not Stage.DONE:
                self._run_stage(stage)
                stage = stage.next()
        except AlreadyRunningError as error:
            return self._reject(error)
        except KeyboardInterrupt:
            return self._fail(stage, DeploymentInterrupted(signal.SIGINT, "SIGINT"))
        except DeployError as error:
            return self._fail(stage, error)
        except Exception as error:
            self.log.opt(exception=error).debug("Unexpected stage error")
            return self._fail(
                stage,
                DeployError(
                    f"Unexpected {type(error).__name__}: {error}", stage=stage.value
                ),
            )
        self._enter(Stage.DONE)
        return self._succeed()

    def _enter(self, stage: Stage) -> None:
        self.state = stage
        self._stage_started = time.monotonic()

    def _elapsed(self) -> float:
        return round(time.monotonic() - self._stage_started, 3)

    def _run_stage(self, stage: Stage) -> None:
        self._enter(stage)
        with stage_context(stage.value):
            self.handlers[stage](self.context)
        self.results.append(StageResult.success(stage, self._elapsed()))

    def _announce(self) -> None:
        ctx = self.context
        self.log.info(
            f"{ctx.driver.module_name} driver deployment | "
            f"Driver: {ctx.driver.version} | Kernel: {ctx.kernel_release}"
        )
        self.log.info(f"Log file: {ctx.log_file}")
        self.log.debug(f"Effective settings: {ctx.settings.to_dict()}")

    def _reject(self, error: AlreadyRunningError) -> int:
        # Nothing was changed and the lock belongs to someone else.
        self.failure = StageResult.failure(Stage.LOCKING, error, self._elapsed())
        self.results.append(self.failure)
        self.log.error(
            f"{error.kind}: installer already running ({describe_holder(error.pid)})"
        )
        return error.exit_code

    def _fail(self, stage: Stage, error: DeployError) -> int:
        self.tearing_down = True
        if error.stage is None:
            error.stage = stage.value
        self.failure = StageResult.failure(stage, error, self._elapsed())
        self.results.append(self.failure)
        self.log.error(f"{error.kind} in stage {stage.value}: {error}")
        try:
            self.actions.drain(ActionPhase.ROLLBACK)
            self.actions.drain(ActionPhase.CLEANUP)
        finally:
            self.lock.release()
            self.context.lock_handle = None
        self.log.error(f"DRIVER DEPLOYMENT FAILED at stage: {stage.label}")
        return error.exit_code

    def _succeed(self) -> int:
        self.tearing_down = True
        self.actions.discard(ActionPhase.ROLLBACK)
        try:
            self.actions.drain(ActionPhase.CLEANUP)
        finally:
            self.lock.release()
            self.context.lock_handle = None
        warnings = self.context.warnings
        if warnings:
            self.log.warning(f"Completed with {len(warnings)} warning(s)")
        self.log.success("DRIVER DEPLOYMENT COMPLETED SUCCESSFULLY")
        self.log.info("System restart recommended for full integration")
        return 0
