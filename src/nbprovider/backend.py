"""Execution backends.

A backend decides when (and whether) a JupyterNotebook.execute call happens.
DelayedExecutionBackend stands in for a real kernel by waiting a random
amount of time first; a real runtime can replace it without touching the
ordering bookkeeping in the notebook model.
"""
from __future__ import annotations

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from typing import Optional

from .model import NotebookDocument
from .notebook import JupyterNotebook

logger = logging.getLogger(__name__)


class CancellationToken:
    def __init__(self):
        self._event = asyncio.Event()

    @property
    def is_cancellation_requested(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


class ExecutionBackend(ABC):
    @abstractmethod
    async def run(
        self,
        notebook: JupyterNotebook,
        document: NotebookDocument,
        cell_index: Optional[int],
        token: CancellationToken,
    ) -> bool:
        """Execute and return True, or return False if cancelled first."""


class ImmediateExecutionBackend(ExecutionBackend):
    async def run(self, notebook, document, cell_index, token) -> bool:
        if token.is_cancellation_requested:
            return False
        notebook.execute(document, cell_index)
        return True


class DelayedExecutionBackend(ExecutionBackend):
    """Waits uniformly in [0, max_delay] seconds, then executes.

    Cancellation during the wait skips execution entirely.
    """

    def __init__(self, max_delay: float = 2.5, rng: Optional[random.Random] = None):
        self.max_delay = max_delay
        self._rng = rng or random.Random()

    def next_delay(self) -> float:
        return self._rng.uniform(0, self.max_delay)

    async def run(self, notebook, document, cell_index, token) -> bool:
        delay = self.next_delay()
        try:
            await asyncio.wait_for(token.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
        if token.is_cancellation_requested:
            logger.debug("Execution of cell %s cancelled", cell_index)
            return False
        notebook.execute(document, cell_index)
        return True
