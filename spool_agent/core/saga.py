"""Ordered steps with compensating actions.

Provisioning a printer touches two systems that cannot share a transaction:
the spooler and the store. Each mutation is a saga step paired with the
action that undoes it. When a step fails, the compensations of the steps
that already completed run in reverse order and the original error is
re-raised, tagged with the failing step.

A step may also carry an ``on_failure`` action for mutations that are not
atomic: ``lpadmin`` drops a queue before re-creating it, so a failed
provision can leave nothing behind. That action runs before the completed
steps are compensated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional

from ..errors import AgentError

LOGGER = logging.getLogger(__name__)

Action = Callable[[], Awaitable[Any]]


@dataclass(slots=True)
class SagaStep:
    name: str
    action: Action
    compensate: Optional[Action] = None
    on_failure: Optional[Action] = None


class Saga:
    """Run steps in order, undoing completed steps when a later one fails."""

    def __init__(self, label: str) -> None:
        self.label = label
        self._steps: List[SagaStep] = []
        self.completed: List[str] = []
        self.compensated: List[str] = []
        self.repaired: List[str] = []

    def step(
        self,
        name: str,
        action: Action,
        compensate: Optional[Action] = None,
        *,
        on_failure: Optional[Action] = None,
    ) -> "Saga":
        self._steps.append(
            SagaStep(
                name=name, action=action, compensate=compensate, on_failure=on_failure
            )
        )
        return self

    async def run(self) -> List[Any]:
        """Execute every step and return their results in order.

        Raises:
            AgentError: The failing step's error (or an ``AgentError`` wrapping
                an unexpected exception), after compensation.
        """
        results: List[Any] = []
        done: List[SagaStep] = []
        for step in self._steps:
            try:
                results.append(await step.action())
            except Exception as exc:
                LOGGER.warning("%s: step %s failed: %s", self.label, step.name, exc)
                await self._repair(step)
                await self._compensate(done)
                if isinstance(exc, AgentError):
                    if exc.step is None:
                        exc.step = step.name
                    raise
                raise AgentError(f"{step.name} failed: {exc}", step=step.name) from exc
            done.append(step)
            self.completed.append(step.name)
        return results

    async def _repair(self, step: SagaStep) -> None:
        if step.on_failure is None:
            return
        try:
            await step.on_failure()
        except Exception:
            LOGGER.exception("%s: repair after %s failed", self.label, step.name)
        else:
            LOGGER.info("%s: repaired %s", self.label, step.name)
            self.repaired.append(step.name)

    async def _compensate(self, done: List[SagaStep]) -> None:
        for step in reversed(done):
            if step.compensate is None:
                continue
            try:
                await step.compensate()
            except Exception:
                LOGGER.exception("%s: compensation for %s failed", self.label, step.name)
            else:
                LOGGER.info("%s: compensated %s", self.label, step.name)
            self.compensated.append(step.name)
