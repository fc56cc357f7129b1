"""
State reconciliation between the realtime feed and the polled store.

Both channels carry the same records and overlap. The reconciler keeps the
latest accepted snapshot per agent and decides whether an incoming one
replaces it:

- An unknown agent is always accepted.
- A realtime snapshot always replaces the stored one.
- A polled snapshot replaces the stored one unless both carry a timestamp
  and the polled one is strictly older. The poller is a fallback and must
  not roll back a newer realtime report it has not caught up with yet.

A realtime report older than a stored polled one still wins. Realtime is
trusted over the store regardless of timestamps.
"""

import logging
from typing import Dict, Optional, Protocol

from mesh_telemetry_bridge.schemas import AgentTelemetrySnapshot, SnapshotSource

logger = logging.getLogger(__name__)

AgentStateTable = Dict[str, AgentTelemetrySnapshot]


class SnapshotSink(Protocol):
    """Receives snapshots once they are accepted."""

    def schedule(self, snapshot: AgentTelemetrySnapshot, source: Optional[SnapshotSource] = None):
        ...


def is_stale(
    incoming: AgentTelemetrySnapshot,
    current: Optional[AgentTelemetrySnapshot],
    source: SnapshotSource,
) -> bool:
    """Return True if ``incoming`` must be discarded in favour of ``current``."""
    if current is None or source is not SnapshotSource.POLL:
        return False
    if incoming.event_timestamp is None or current.event_timestamp is None:
        return False
    return incoming.event_timestamp < current.event_timestamp


class StateReconciler:
    """Owns the accept/overwrite decision for the agent state table."""

    def __init__(self, table: AgentStateTable, sink: Optional[SnapshotSink] = None):
        """
        Initialize reconciler.

        Args:
            table: State table to maintain; only the reconciler writes to it
            sink: Where accepted snapshots are sent (normally the exporter)
        """
        self.table = table
        self.sink = sink
        self._accepted = {source: 0 for source in SnapshotSource}
        self._rejected = {source: 0 for source in SnapshotSource}

    def submit(self, snapshot: AgentTelemetrySnapshot, source: SnapshotSource) -> bool:
        """
        Offer a snapshot to the state table.

        The read-decide-write below has no suspension point, so it is atomic
        on the event loop. Running this from several threads would need a
        lock around it.

        Returns:
            True if the snapshot was installed, False if it was stale
        """
        current = self.table.get(snapshot.agent_id)

        if is_stale(snapshot, current, source):
            self._rejected[source] += 1
            logger.debug(
                f"Ignoring stale {source.value} telemetry for {snapshot.agent_id} "
                f"(ts={snapshot.event_timestamp} < {current.event_timestamp})"
            )
            return False

        self.table[snapshot.agent_id] = snapshot
        self._accepted[source] += 1

        if self.sink is not None:
            self.sink.schedule(snapshot, source)
        return True

    def get(self, agent_id: str) -> Optional[AgentTelemetrySnapshot]:
        """Get the current snapshot for an agent."""
        return self.table.get(agent_id)

    def get_stats(self) -> dict:
        """Get reconciliation statistics."""
        return {
            "agents": len(self.table),
            "accepted": {source.value: count for source, count in self._accepted.items()},
            "rejected": {source.value: count for source, count in self._rejected.items()},
        }
