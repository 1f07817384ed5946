"""Base class for periodic tasks on the page's event loop."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger(__name__)


class BaseWorker(ABC):
    """
    Abstract base class for periodic workers.

    Runs ``process()`` every ``interval_seconds`` on the running event loop
    until stopped. An iteration that raises is logged and the loop carries
    on at the next tick.
    """

    def __init__(self, name: str, interval_seconds: float = 60.0):
        """
        Initialize the worker.

        Args:
            name: Worker name for logging
            interval_seconds: How often to run the task
        """
        self.name = name
        self.interval_seconds = interval_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self.iterations = 0

    @abstractmethod
    async def process(self) -> None:
        """Process one iteration of the periodic task."""

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Schedule the worker loop on the running event loop."""
        if self._running:
            logger.warning(f"{self.name} worker is already running")
            return

        self._running = True
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"{self.name} worker started with {self.interval_seconds}s interval")

    async def stop(self) -> None:
        """Stop the worker and wait for its loop to unwind."""
        if not self._running:
            return

        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info(f"{self.name} worker stopped")

    async def _run(self) -> None:
        """Main worker loop."""
        loop = asyncio.get_running_loop()

        while self._running:
            started = loop.time()
            try:
                await self.process()
                self.iterations += 1
            except asyncio.CancelledError:
                logger.debug(f"{self.name} worker loop cancelled")
                raise
            except Exception as e:
                logger.error(
                    f"{self.name} worker error: {str(e)}",
                    exc_info=True,
                    extra={"worker": self.name}
                )

            duration = loop.time() - started
            await asyncio.sleep(max(0.0, self.interval_seconds - duration))
