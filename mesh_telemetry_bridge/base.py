"""
Base classes for telemetry collectors.

A collector fetches a batch of items from one source. A periodic collector
runs it on a fixed schedule and hands each batch on. Errors never escape a
collection: they are logged, counted and the batch comes back empty.
"""

from abc import ABC, abstractmethod
from typing import Any, Generic, List, Optional, TypeVar
from datetime import datetime, timezone
import asyncio
import logging

logger = logging.getLogger(__name__)

# Type variable for collected items
T = TypeVar("T")


class BaseCollector(ABC, Generic[T]):
    """
    Abstract base class for collectors.

    Subclasses implement ``collect``. Callers use ``collect_safely`` which
    adds error isolation and statistics.
    """

    def __init__(self, name: str):
        """
        Initialize base collector.

        Args:
            name: Collector name for logging and identification
        """
        self.name = name
        self._last_collection_time: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._collection_count = 0
        self._error_count = 0

    @abstractmethod
    async def collect(self) -> List[T]:
        """
        Collect items from the source.

        May raise; ``collect_safely`` turns failures into an empty batch.
        """
        pass

    async def collect_safely(self) -> List[T]:
        """
        Collect items, logging and swallowing any failure.

        Returns:
            Collected items, or an empty list on error
        """
        self._collection_count += 1
        start_time = datetime.now(timezone.utc)
        try:
            result = await self.collect()
        except Exception as e:
            self._error_count += 1
            self._last_error = str(e)
            logger.error(f"{self.name} collection failed: {e}")
            return []

        self._last_collection_time = datetime.now(timezone.utc)
        logger.debug(
            f"{self.name} collected {len(result)} items in "
            f"{(self._last_collection_time - start_time).total_seconds():.2f}s"
        )
        return result

    def get_stats(self) -> dict:
        """
        Get collector statistics.

        Returns:
            Dictionary with collection stats
        """
        return {
            "name": self.name,
            "collections": self._collection_count,
            "errors": self._error_count,
            "error_rate": self._error_count / max(1, self._collection_count),
            "last_collection": self._last_collection_time.isoformat()
            if self._last_collection_time
            else None,
            "last_error": self._last_error,
        }


class PeriodicCollector(ABC):
    """
    Runs a collector on a fixed schedule.

    The first run happens after ``initial_delay_seconds``, then every
    ``interval_seconds``. A failed run never stops the schedule.
    """

    def __init__(
        self,
        collector: BaseCollector,
        interval_seconds: float = 60,
        initial_delay_seconds: float = 0,
    ):
        """
        Initialize periodic collector.

        Args:
            collector: The collector to run periodically
            interval_seconds: Time between runs
            initial_delay_seconds: Time before the first run
        """
        self.collector = collector
        self.interval_seconds = interval_seconds
        self.initial_delay_seconds = initial_delay_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        """Start the periodic collection loop."""
        if self._running:
            logger.warning(f"{self.collector.name} already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._collection_loop())
        logger.info(
            f"Started periodic collection for {self.collector.name} every "
            f"{self.interval_seconds}s (first run in {self.initial_delay_seconds}s)"
        )

    async def stop(self) -> None:
        """Stop the periodic collection loop."""
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

        logger.info(f"Stopped periodic collection for {self.collector.name}")

    async def run_once(self) -> List[Any]:
        """Run a single collection and hand the batch on."""
        data = await self.collector.collect_safely()
        if data:
            await self._handle_data(data)
        return data

    async def _collection_loop(self) -> None:
        """Main collection loop."""
        await asyncio.sleep(self.initial_delay_seconds)
        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"{self.collector.name} loop error: {e}")

            await asyncio.sleep(self.interval_seconds)

    @abstractmethod
    async def _handle_data(self, data: List[Any]) -> None:
        """
        Process a collected batch.

        Args:
            data: Items returned by the collector
        """
        pass

    @property
    def is_running(self) -> bool:
        """Check if the loop is running."""
        return self._running
