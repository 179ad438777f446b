from __future__ import annotations

import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from loguru import Logger

from loguru import logger

LOG_LINE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} [{level}] {message}"


def setup_logging(
    *,
    debug: bool = False,
    log_file: Path | None = None,
    console: bool = True,
) -> Logger:
    """
    Setup console and file logging for a deployment run.

    Sinks:
    - Console (stderr): INFO+, or DEBUG+ when debug is enabled
    - Log file: append-only, one timestamped line per event

    Nothing is written by this function itself, so a run that stops at the
    lock contention check leaves only that message in the log.

    Args:
        debug: Enable DEBUG level logging and loguru's extended tracebacks
        log_file: Append-only log file (parent directories are created)
        console: Attach the stderr sink
    """
    logger.remove()
    logger.configure(extra={"tags": [], "source": "deployer"})

    level = "DEBUG" if debug else "INFO"

    # SINK 1: Console (stderr) - operator-facing
    if console:
        logger.add(
            sys.stderr,
            level=level,
            backtrace=debug,
            diagnose=debug,
            colorize=False,
            format=(
                "{time:HH:mm:ss} | "
                "{level: <8} | "
                "{extra[source]: <12} | "
                "{message}"
            ),
        )

    # SINK 2: Deployment log - append-only, never rotated or truncated
    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level=level,
            mode="a",
            encoding="utf-8",
            backtrace=False,
            diagnose=False,
            format=LOG_LINE_FORMAT,
        )

    return logger


@contextmanager
def stage_context(stage_name: str, **details):
    """
    Context manager for timing a pipeline stage.

    Logs the stage start at DEBUG, then its completion or failure with the
    elapsed duration. Exceptions are re-raised unchanged.

    Yields:
        Logger bound to the stage
    """
    log = logger.bind(source=stage_name, tags=["stage", stage_name], **details)
    start_time = time.monotonic()
    log.debug(f"Stage {stage_name} started")
    try:
        yield log
    except BaseException as e:
        duration = time.monotonic() - start_time
        log.debug(
            f"Stage {stage_name} aborted after {duration:.2f}s "
            f"({type(e).__name__})"
        )
        raise
    duration = time.monotonic() - start_time
    log.debug(f"Stage {stage_name} completed in {duration:.2f}s")


class LoggerFactory:
    """
    Factory for creating component loggers with automatic context.
    """

    @staticmethod
    def for_pipeline() -> Logger:
        """Logger for the stage runner and final banner."""
        return logger.bind(source="pipeline", tags=["pipeline"])

    @staticmethod
    def for_lock() -> Logger:
        """Logger for process lock acquisition and release."""
        return logger.bind(source="lock", tags=["lock"])

    @staticmethod
    def for_actions() -> Logger:
        """Logger for rollback and cleanup actions."""
        return logger.bind(source="actions", tags=["actions", "teardown"])

    @staticmethod
    def for_stage(name: str) -> Logger:
        """Logger for a single pipeline stage body."""
        return logger.bind(source=name, tags=["stage", name])

    @staticmethod
    def for_system() -> Logger:
        """Logger for subprocess execution and host probes."""
        return logger.bind(source="system", tags=["system"])
