"""Compensation saga for multi-step operations.

Each completed step registers an undo action. If a later step fails, the
undo actions run in reverse order and the original error propagates.

Usage:
    async with Saga("invite_employee") as saga:
        identity = await provider.invite_user(...)
        saga.on_rollback("revoke identity", lambda: provider.delete_user(identity.identity_id))

        account = await create_account(...)
        saga.on_rollback("delete account", lambda: delete_account(account))
    # Any exception inside the block triggers compensation before re-raising
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import TracebackType
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompensationStep:
    """Undo action for one completed saga step."""

    name: str
    action: Callable[[], Awaitable[None]]


class Saga:
    """Collects compensation steps and runs them in reverse on failure."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._steps: list[CompensationStep] = []
        self.compensated: list[str] = []
        self.compensation_errors: list[Exception] = []

    @property
    def pending_steps(self) -> list[str]:
        return [step.name for step in self._steps]

    def on_rollback(self, name: str, action: Callable[[], Awaitable[None]]) -> None:
        """Register the undo action for a step that just completed."""
        self._steps.append(CompensationStep(name=name, action=action))

    async def compensate(self) -> list[Exception]:
        """Run registered undo actions newest first.

        A failing undo action is logged and recorded; the remaining actions
        still run. Returns the errors raised by undo actions.
        """
        errors: list[Exception] = []
        while self._steps:
            step = self._steps.pop()
            try:
                await step.action()
                self.compensated.append(step.name)
            except Exception as e:
                logger.exception(
                    "Compensation step '%s' of saga '%s' failed",
                    step.name,
                    self.name,
                )
                errors.append(e)
        self.compensation_errors.extend(errors)
        return errors

    def complete(self) -> None:
        """Forget registered undo actions once every step has succeeded."""
        self._steps.clear()

    async def __aenter__(self) -> Saga:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        if exc is None:
            self.complete()
            return False

        logger.warning(
            "Saga '%s' failed (%s); compensating %d step(s)",
            self.name,
            exc_type.__name__ if exc_type else "error",
            len(self._steps),
        )
        await self.compensate()
        return False
