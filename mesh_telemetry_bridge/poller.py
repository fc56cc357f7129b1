"""
Snapshot poller for the durable telemetry store.

Agents also write their latest record to a key-value bucket. Polling it
fills gaps left by missed realtime messages and picks up agents that were
reporting before the bridge started.
"""

import logging
from typing import List

from mesh_telemetry_bridge.base import BaseCollector, PeriodicCollector
from mesh_telemetry_bridge.protocols import SnapshotStore
from mesh_telemetry_bridge.reconciler import StateReconciler
from mesh_telemetry_bridge.schemas import (
    AgentTelemetrySnapshot,
    SnapshotSource,
    decode_snapshot,
)

logger = logging.getLogger(__name__)


class StoreSnapshotCollector(BaseCollector[AgentTelemetrySnapshot]):
    """Reads and decodes every snapshot in the store."""

    def __init__(self, store: SnapshotStore):
        super().__init__(name="StoreSnapshotCollector")
        self.store = store
        self._skipped_count = 0

    async def collect(self) -> List[AgentTelemetrySnapshot]:
        """
        Fetch and decode all stored snapshots.

        A failure listing keys aborts the whole cycle. A failure on a single
        key is logged and that key is skipped.
        """
        keys = await self.store.keys()

        snapshots: List[AgentTelemetrySnapshot] = []
        for key in keys:
            try:
                value = await self.store.get(key)
                if not value:
                    logger.debug(f"KV entry {key} is empty, skipping")
                    continue
                snapshots.append(decode_snapshot(value, fallback_agent_id=key))
            except Exception as e:
                self._skipped_count += 1
                logger.error(f"KV get {key}: {e}")

        logger.debug(f"Decoded {len(snapshots)}/{len(keys)} stored snapshots")
        return snapshots

    def get_stats(self) -> dict:
        stats = super().get_stats()
        stats["skipped_keys"] = self._skipped_count
        return stats


class SnapshotPoller(PeriodicCollector):
    """Periodically submits stored snapshots to the reconciler."""

    def __init__(
        self,
        store: SnapshotStore,
        reconciler: StateReconciler,
        interval_seconds: float = 30,
        initial_delay_seconds: float = 5,
    ):
        """
        Initialize poller.

        Args:
            store: Key-value store holding one snapshot per agent
            reconciler: Reconciler receiving decoded snapshots
            interval_seconds: Time between polls
            initial_delay_seconds: Time before the first poll
        """
        super().__init__(
            collector=StoreSnapshotCollector(store),
            interval_seconds=interval_seconds,
            initial_delay_seconds=initial_delay_seconds,
        )
        self.reconciler = reconciler
        self._last_accepted = 0

    async def _handle_data(self, data: List[AgentTelemetrySnapshot]) -> None:
        accepted = 0
        for snapshot in data:
            try:
                if self.reconciler.submit(snapshot, SnapshotSource.POLL):
                    accepted += 1
            except Exception as e:
                logger.error(f"Failed to submit polled telemetry for {snapshot.agent_id}: {e}")

        self._last_accepted = accepted
        logger.debug(f"Poll accepted {accepted}/{len(data)} snapshots")

    async def poll_once(self) -> int:
        """
        Run a single poll cycle.

        Returns:
            Number of snapshots the reconciler accepted
        """
        self._last_accepted = 0
        await self.run_once()
        return self._last_accepted

    def get_stats(self) -> dict:
        return self.collector.get_stats()
