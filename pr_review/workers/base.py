"""Abstract capability interface for reviewer workers."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Receives each raw event a worker streams while answering a prompt.
ProgressHandler = Callable[[dict[str, Any]], None]


class WorkerError(Exception):
    """Raised when a worker fails to start or a prompt cannot be completed."""

    def __init__(self, worker_name: str, message: str) -> None:
        self.worker_name = worker_name
        super().__init__(f"[{worker_name}] {message}")


class WorkerHandle(ABC):
    """One running reviewer process."""

    @abstractmethod
    def name(self) -> str:
        """Return the reviewer name (e.g. 'reviewer-a')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the model identifier the worker runs."""
        ...

    @abstractmethod
    async def send(self, prompt: str, on_progress: ProgressHandler | None = None) -> str:
        """Send a prompt and wait for the complete response.

        Args:
            prompt: The full prompt text to send.
            on_progress: Optional callback for streamed events (display only).

        Returns:
            The final response text.

        Raises:
            WorkerError: On communication failure, timeout, or worker exit.
        """
        ...

    @abstractmethod
    async def terminate(self) -> None:
        """Stop the worker. May raise; callers go through terminate_quietly."""
        ...


class WorkerSpawner(ABC):
    """Starts fresh workers with no memory of earlier prompts."""

    @abstractmethod
    async def spawn(
        self,
        name: str,
        model: str,
        thinking: str,
        system_prompt: str,
        working_dir: Path,
    ) -> WorkerHandle:
        """Start a worker and confirm it is still alive after the grace period.

        Raises:
            WorkerError: If the worker cannot be started or exits during the grace period.
        """
        ...


async def terminate_quietly(worker: WorkerHandle) -> None:
    """Terminate a worker, logging instead of raising on failure."""
    try:
        await worker.terminate()
    except Exception as exc:
        logger.warning("Failed to terminate %s: %s", worker.name(), exc)
