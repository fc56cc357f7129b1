"""
Realtime ingestion of agent telemetry from the live subscription.
"""

import logging

from mesh_telemetry_bridge.exceptions import SnapshotDecodeError
from mesh_telemetry_bridge.protocols import FeedMessage, TelemetryFeed
from mesh_telemetry_bridge.reconciler import StateReconciler
from mesh_telemetry_bridge.schemas import SnapshotSource, decode_snapshot

logger = logging.getLogger(__name__)


def agent_id_from_subject(subject: str) -> str:
    """Return the last segment of a dotted subject (mesh.telemetry.<agent>)."""
    return subject.rsplit(".", 1)[-1]


class PushIngestor:
    """Feeds realtime telemetry messages into the reconciler."""

    def __init__(self, feed: TelemetryFeed, reconciler: StateReconciler):
        self.feed = feed
        self.reconciler = reconciler
        self._processed_count = 0
        self._decode_error_count = 0
        self._error_count = 0

    def handle_message(self, message: FeedMessage) -> bool:
        """
        Decode and submit one message.

        Returns:
            True if the reconciler accepted the snapshot
        """
        try:
            snapshot = decode_snapshot(
                message.data, fallback_agent_id=agent_id_from_subject(message.subject)
            )
        except SnapshotDecodeError as e:
            self._decode_error_count += 1
            logger.warning(f"Dropping malformed telemetry on {message.subject}: {e}")
            return False

        self._processed_count += 1
        return self.reconciler.submit(snapshot, SnapshotSource.REALTIME)

    async def run(self) -> None:
        """Consume the feed until it ends. A bad message never stops the loop."""
        logger.info("Realtime telemetry ingestion started")
        async for message in self.feed.messages():
            try:
                self.handle_message(message)
            except Exception as e:
                self._error_count += 1
                logger.error(f"Sub error on {message.subject}: {e}")
        logger.info("Realtime telemetry feed closed")

    def get_stats(self) -> dict:
        """Get ingestion statistics."""
        return {
            "processed": self._processed_count,
            "decode_errors": self._decode_error_count,
            "errors": self._error_count,
        }
