"""Bounded retries with linear backoff for flaky network operations."""

from __future__ import annotations

import time
from typing import Callable, Optional, TypeVar

from kmod_deployer.exceptions import DeploymentInterrupted, ExhaustedRetriesError
from kmod_deployer.logging import LoggerFactory


T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 2.0


class RetryableRunner:
    """Run an operation until it succeeds or the attempt budget is spent.

    After failed attempt ``n`` the runner sleeps ``base_delay * n`` seconds
    before trying again. There is no sleep after the last attempt.

    Only network fetches go through here. Builds and installs are run once:
    repeating them with the same inputs fails the same way. A termination
    signal is never treated as a failed attempt.
    """

    def __init__(
        self,
        *,
        sleep: Callable[[float], None] = time.sleep,
        retry_on: tuple[type[BaseException], ...] = (Exception,),
        name: str = "operation",
    ):
        self._sleep = sleep
        self.retry_on = retry_on
        self.name = name
        self.log = LoggerFactory.for_system()
        self.attempts = 0

    def run(
        self,
        operation: Callable[[], T],
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        *,
        before_retry: Optional[Callable[[int], None]] = None,
    ) -> T:
        """Call ``operation`` until it returns without raising.

        Args:
            operation: Zero-argument callable; raising counts as a failure
            max_attempts: Total attempts, at least 1
            base_delay: Seconds multiplied by the failed attempt number
            before_retry: Called with the next attempt number before each retry

        Raises:
            ExhaustedRetriesError: Every attempt failed
            ValueError: max_attempts is less than 1
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.attempts = 0
        last_error: Optional[BaseException] = None
        for attempt in range(1, max_attempts + 1):
            self.attempts = attempt
            try:
                return operation()
            except DeploymentInterrupted:
                raise
            except self.retry_on as error:
                last_error = error
                self.log.warning(
                    f"{self.name.capitalize()} attempt {attempt}/{max_attempts} "
                    f"failed: {error}"
                )
            if attempt < max_attempts:
                delay = base_delay * attempt
                self.log.debug(f"Retrying {self.name} in {delay:.1f}s")
                self._sleep(delay)
                if before_retry is not None:
                    before_retry(attempt + 1)
        raise ExhaustedRetriesError(self.attempts, last_error)
