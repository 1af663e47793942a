"""Lifecycle of the application's background workers."""

import asyncio
import logging
from typing import Any, Dict, Iterable

from .base import BaseWorker

logger = logging.getLogger(__name__)


class WorkerManager:
    """Starts workers together on startup and stops them together on shutdown."""

    def __init__(self, workers: Iterable[BaseWorker]):
        self.workers: Dict[str, BaseWorker] = {worker.name: worker for worker in workers}

    async def start_all(self) -> None:
        for worker in self.workers.values():
            await worker.start()

    async def stop_all(self) -> None:
        results = await asyncio.gather(
            *(worker.stop() for worker in self.workers.values()),
            return_exceptions=True,
        )
        for name, result in zip(self.workers, results):
            if isinstance(result, Exception):
                logger.error("Error stopping worker", extra={"worker": name, "error": str(result)})

    def get_worker(self, name: str) -> BaseWorker:
        return self.workers[name]

    def get_worker_status(self) -> Dict[str, Dict[str, Any]]:
        return {name: worker.status() for name, worker in self.workers.items()}
