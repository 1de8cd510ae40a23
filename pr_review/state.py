"""Mutable state of the one review run currently executing.

Only the run holding the session's single-run token touches this, so it
needs no locking.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from pr_review.workers.base import WorkerHandle, terminate_quietly

logger = logging.getLogger(__name__)


@dataclass
class RunState:
    on_progress: Callable[["RunState"], None] | None = None
    active_workers: list[WorkerHandle] = field(default_factory=list)
    phase: str = ""
    cycle_info: str = ""

    @property
    def header(self) -> str:
        if self.cycle_info:
            return f"PR Review {self.cycle_info} - {self.phase}"
        return f"PR Review - {self.phase}"

    def notify(self) -> None:
        if self.on_progress:
            self.on_progress(self)

    def set_phase(self, phase: str) -> None:
        self.phase = phase
        logger.info("%s", self.header)
        self.notify()

    def track(self, worker: WorkerHandle) -> None:
        self.active_workers.append(worker)
        self.notify()

    def holds(self, worker: WorkerHandle) -> bool:
        return any(w is worker for w in self.active_workers)

    async def release(self, worker: WorkerHandle) -> None:
        """Drop a worker from the active set, then terminate it (errors swallowed)."""
        self.active_workers = [w for w in self.active_workers if w is not worker]
        self.notify()
        await terminate_quietly(worker)

    async def release_all(self) -> None:
        workers, self.active_workers = self.active_workers, []
        if workers:
            await asyncio.gather(*(terminate_quietly(w) for w in workers))
            self.notify()

    def reset(self) -> None:
        self.active_workers = []
        self.phase = ""
        self.cycle_info = ""
        self.notify()
