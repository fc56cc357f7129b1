"""
Contracts between the bridge and its upstream sources.

The ingestor and poller only depend on these protocols. The NATS adapters
implement them for production; tests use simple in-memory fakes.
"""

from dataclasses import dataclass
from typing import AsyncIterator, List, Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class FeedMessage:
    """A single message delivered by the live subscription."""

    subject: str
    data: bytes


@runtime_checkable
class TelemetryFeed(Protocol):
    """Live push subscription of agent telemetry events."""

    def messages(self) -> AsyncIterator[FeedMessage]:
        """
        Iterate over inbound messages until the subscription ends.

        Promises:
        - Yields messages in delivery order
        - Ends only when the subscription is closed
        """
        ...


@runtime_checkable
class SnapshotStore(Protocol):
    """Durable key-value store holding the last snapshot per agent."""

    async def keys(self) -> List[str]:
        """
        List all keys in the store.

        Promises:
        - Returns an empty list for an empty store
        - Raises on access failure
        """
        ...

    async def get(self, key: str) -> Optional[bytes]:
        """
        Fetch the value stored under ``key``.

        Promises:
        - Returns None when the key is absent, deleted or empty
        - Raises on access failure
        """
        ...
