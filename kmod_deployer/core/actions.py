"""Deferred rollback and cleanup actions.

Stages register an action right after they change something. The stage
runner drains the stacks on teardown:

    failure:  drain(ROLLBACK) then drain(CLEANUP)
    success:  discard(ROLLBACK) then drain(CLEANUP)

Both stacks run last-in, first-out. A failing action is logged and skipped so
the rest of the stack still runs and the first failure stays the one that
is reported.
"""

from __future__ import annotations

from typing import Any, Callable

from kmod_deployer.domain.models import Action, ActionPhase
from kmod_deployer.logging import LoggerFactory


log = LoggerFactory.for_actions()


class ActionStack:
    def __init__(self) -> None:
        self._stacks: dict[ActionPhase, list[Action]] = {
            phase: [] for phase in ActionPhase
        }

    def push(
        self, phase: ActionPhase, description: str, callback: Callable[[], Any]
    ) -> Action:
        """Register a deferred action and return it."""
        action = Action(phase=phase, description=description, callback=callback)
        self._stacks[phase].append(action)
        log.debug(f"Registered {phase.value} action: {description}")
        return action

    def pending(self, phase: ActionPhase) -> list[str]:
        """Descriptions of registered actions in execution order."""
        return [action.description for action in reversed(self._stacks[phase])]

    def __len__(self) -> int:
        return sum(len(stack) for stack in self._stacks.values())

    def drain(self, phase: ActionPhase) -> int:
        """Run every action of a phase, newest first.

        Returns:
            Number of actions that raised
        """
        stack = self._stacks[phase]
        if not stack:
            return 0
        log.info(f"Executing {len(stack)} {phase.value} action(s)")
        failures = 0
        while stack:
            action = stack.pop()
            description = action.description
            try:
                action()
            except Exception as error:
                failures += 1
                log.error(
                    f"{phase.value.capitalize()} action failed: {description}: "
                    f"{error}"
                )
            else:
                log.debug(f"{phase.value.capitalize()} action done: {description}")
        return failures

    def discard(self, phase: ActionPhase) -> int:
        """Drop every action of a phase without running it."""
        stack = self._stacks[phase]
        count = len(stack)
        stack.clear()
        if count:
            log.debug(f"Discarded {count} {phase.value} action(s)")
        return count
