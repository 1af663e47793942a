"""Periodic background job runner."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class BaseWorker(ABC):
    """
    Runs ``process`` every ``interval_seconds`` until stopped.

    A failed iteration is logged and counted; the next one starts on
    schedule. ``stop`` wakes a sleeping worker immediately and cancels an
    iteration in progress. Work done inside ``process`` must therefore be
    safe to interrupt, which holds for payouts because each booking is
    claimed in its own transaction.
    """

    def __init__(self, name: str, interval_seconds: float = 60):
        self.name = name
        self.interval_seconds = interval_seconds
        self.iterations = 0
        self.failures = 0
        self.last_error: Optional[str] = None
        self._stopping = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @abstractmethod
    async def process(self) -> None:
        """One iteration of the job."""

    async def run_once(self) -> bool:
        """Run a single iteration and report whether it succeeded."""
        started = time.monotonic()
        try:
            await self.process()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failures += 1
            self.last_error = str(e)
            logger.error("Worker iteration failed", exc_info=True, extra={"worker": self.name})
            return False
        finally:
            self.iterations += 1
            logger.debug(
                "Worker iteration finished",
                extra={"worker": self.name, "duration_seconds": round(time.monotonic() - started, 3)},
            )
        self.last_error = None
        return True

    async def start(self) -> None:
        if self.is_running:
            logger.warning("Worker is already running", extra={"worker": self.name})
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._loop(), name=f"worker:{self.name}")
        logger.info("Worker started", extra={"worker": self.name, "interval_seconds": self.interval_seconds})

    async def stop(self) -> None:
        if not self.is_running:
            return
        self._stopping.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Worker stopped", extra={"worker": self.name, "iterations": self.iterations})

    def status(self) -> Dict[str, Any]:
        return {
            "running": self.is_running,
            "iterations": self.iterations,
            "failures": self.failures,
            "last_error": self.last_error,
        }

    async def _loop(self) -> None:
        while not self._stopping.is_set():
            started = time.monotonic()
            await self.run_once()
            delay = max(0.0, self.interval_seconds - (time.monotonic() - started))
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=delay)
            except asyncio.TimeoutError:
                continue
