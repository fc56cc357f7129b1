"""
NATS adapters for the telemetry feed and the snapshot store.

Thin wrappers around nats-py that expose the ``TelemetryFeed`` and
``SnapshotStore`` protocols. Connection handling (reconnects, drain) is
left to the client library.
"""

import logging
from typing import AsyncIterator, List, Optional

import nats
from nats.aio.client import Client as NATS
from nats.aio.subscription import Subscription
from nats.js.errors import KeyNotFoundError, NoKeysError
from nats.js.kv import KeyValue

from mesh_telemetry_bridge.exceptions import ConfigurationError
from mesh_telemetry_bridge.protocols import FeedMessage

logger = logging.getLogger(__name__)


class NatsTelemetryFeed:
    """Live subscription to per-agent telemetry subjects."""

    def __init__(self, subscription: Subscription):
        self.subscription = subscription

    async def messages(self) -> AsyncIterator[FeedMessage]:
        async for msg in self.subscription.messages:
            yield FeedMessage(subject=msg.subject, data=msg.data)


class NatsKeyValueStore:
    """JetStream key-value bucket holding the latest snapshot per agent."""

    def __init__(self, kv: KeyValue):
        self.kv = kv

    async def keys(self) -> List[str]:
        try:
            return list(await self.kv.keys())
        except NoKeysError:
            return []

    async def get(self, key: str) -> Optional[bytes]:
        try:
            entry = await self.kv.get(key)
        except KeyNotFoundError:
            return None
        return entry.value or None


class NatsConnection:
    """Owns the NATS client used by the bridge."""

    def __init__(self, url: str, seed: str):
        """
        Initialize connection settings.

        Args:
            url: NATS server URL
            seed: NKey seed used to authenticate
        """
        if not seed.strip():
            raise ConfigurationError("NATS_SEED required")
        self.url = url
        self.seed = seed.strip()
        self.client: Optional[NATS] = None

    async def connect(self) -> NATS:
        """Connect with unlimited reconnect attempts."""
        self.client = await nats.connect(
            servers=[self.url],
            nkeys_seed_str=self.seed,
            allow_reconnect=True,
            max_reconnect_attempts=-1,
            error_cb=self._on_error,
            disconnected_cb=self._on_disconnected,
            reconnected_cb=self._on_reconnected,
        )
        logger.info(f"Connected to {self.url}")
        return self.client

    async def subscribe(self, subject: str) -> NatsTelemetryFeed:
        subscription = await self._require_client().subscribe(subject)
        logger.info(f"Subscribed to {subject}")
        return NatsTelemetryFeed(subscription)

    async def key_value(self, bucket: str) -> Optional[NatsKeyValueStore]:
        """
        Open a key-value bucket.

        Returns:
            The store, or None if the bucket is not available
        """
        try:
            kv = await self._require_client().jetstream().key_value(bucket)
        except Exception as e:
            logger.warning(f"KV not available: {e}")
            return None
        logger.info(f"KV bucket {bucket} ready")
        return NatsKeyValueStore(kv)

    async def drain(self) -> None:
        """Drain and close the connection."""
        if self.client is None or self.client.is_closed:
            return
        logger.info("Draining NATS connection")
        try:
            await self.client.drain()
        except Exception as e:
            logger.error(f"Failed to drain NATS connection: {e}")

    def _require_client(self) -> NATS:
        if self.client is None:
            raise RuntimeError("NATS connection not established")
        return self.client

    async def _on_error(self, e: Exception) -> None:
        logger.error(f"NATS error: {e}")

    async def _on_disconnected(self) -> None:
        logger.warning("Disconnected from NATS")

    async def _on_reconnected(self) -> None:
        logger.info(f"Reconnected to {self.url}")
