"""Ordered, fault-tolerant teardown."""

from dataclasses import dataclass
from typing import Awaitable, Callable

from ..logging_config import get_logger

logger = get_logger(__name__)

TeardownAction = Callable[[], Awaitable[None]]


@dataclass
class TeardownStep:
    """One registered undo action."""

    description: str
    action: TeardownAction


class TeardownStack:
    """Undo actions executed in reverse registration order.

    Every step runs even when an earlier one fails; failures are logged and
    collected, never raised.
    """

    def __init__(self):
        self._steps: list[TeardownStep] = []
        self._errors: list[tuple[str, Exception]] = []

    def push(self, description: str, action: TeardownAction) -> None:
        """Register an action; the last one pushed runs first."""
        self._steps.append(TeardownStep(description, action))

    def __len__(self) -> int:
        return len(self._steps)

    @property
    def errors(self) -> list[tuple[str, Exception]]:
        """Failures of the last unwind, as (description, error)."""
        return list(self._errors)

    async def unwind(self) -> None:
        """Run and drop every registered step, last registered first."""
        while self._steps:
            step = self._steps.pop()
            try:
                await step.action()
            except Exception as e:
                logger.warning("Teardown of %s failed: %s", step.description, e)
                self._errors.append((step.description, e))
