"""
Bridge service that wires the pipeline together and manages its lifecycle.

    NATS subscription ──► PushIngestor ──┐
                                         ├─► StateReconciler ─► Exporter ─► VictoriaMetrics
    NATS KV bucket ────► SnapshotPoller ─┘
"""

import asyncio
import logging
import signal
from typing import Optional

from mesh_telemetry_bridge.config import BridgeConfig
from mesh_telemetry_bridge.exporter import VictoriaMetricsExporter
from mesh_telemetry_bridge.ingestor import PushIngestor
from mesh_telemetry_bridge.nats_adapter import NatsConnection
from mesh_telemetry_bridge.poller import SnapshotPoller
from mesh_telemetry_bridge.reconciler import AgentStateTable, StateReconciler

logger = logging.getLogger(__name__)


class BridgeService:
    """
    Runs the telemetry bridge.

    This service:
    - Owns the agent state table for the lifetime of the process
    - Connects to NATS and opens the subscription and KV bucket
    - Runs realtime ingestion and periodic polling as two tasks
    - Shuts down on SIGINT/SIGTERM
    """

    def __init__(
        self,
        config: BridgeConfig,
        connection: Optional[NatsConnection] = None,
        exporter: Optional[VictoriaMetricsExporter] = None,
    ):
        """
        Initialize bridge service.

        Args:
            config: Bridge configuration
            connection: NATS connection (created from config if omitted)
            exporter: Metrics exporter (created from config if omitted)
        """
        self.config = config
        self.connection = connection

        self.state_table: AgentStateTable = {}
        self.exporter = exporter or VictoriaMetricsExporter(
            config.vm_url, timeout_seconds=config.export_timeout_seconds
        )
        self.reconciler = StateReconciler(self.state_table, sink=self.exporter)

        # Components
        self.ingestor: Optional[PushIngestor] = None
        self.poller: Optional[SnapshotPoller] = None

        # Service state
        self._ingest_task: Optional[asyncio.Task] = None
        self._stop_task: Optional[asyncio.Task] = None
        self._running = False
        self._shutdown_event = asyncio.Event()

    async def initialize(self) -> None:
        """
        Connect to NATS and build the ingestion components.

        Raises:
            ConfigurationError: the NATS seed is missing
            Exception: the NATS connection cannot be established
        """
        logger.info("Initializing telemetry bridge")
        self.config.validate_for_startup()

        if self.connection is None:
            self.connection = NatsConnection(self.config.nats_url, self.config.nats_seed)
        await self.connection.connect()

        feed = await self.connection.subscribe(self.config.subject)
        self.ingestor = PushIngestor(feed, self.reconciler)

        store = await self.connection.key_value(self.config.kv_bucket)
        if store is not None:
            self.poller = SnapshotPoller(
                store,
                self.reconciler,
                interval_seconds=self.config.poll_interval_seconds,
                initial_delay_seconds=self.config.initial_poll_delay_seconds,
            )
        else:
            logger.warning("Running without KV polling")

        logger.info(
            f"Telemetry bridge initialized "
            f"(subject={self.config.subject}, polling={'enabled' if self.poller else 'disabled'}, "
            f"vm={self.config.vm_url})"
        )

    async def start(self) -> None:
        """Start ingestion and polling, then wait for shutdown."""
        if self._running:
            logger.warning("Telemetry bridge already running")
            return

        if self.ingestor is None:
            await self.initialize()

        assert self.ingestor is not None
        self._ingest_task = asyncio.create_task(self.ingestor.run())
        self._ingest_task.add_done_callback(self._on_ingest_done)

        if self.poller:
            await self.poller.start()

        self._running = True
        self._register_signal_handlers()
        logger.info("Telemetry bridge started")

        await self._shutdown_event.wait()

    async def stop(self) -> None:
        """Stop ingestion and polling, abandon in-flight work and drain NATS."""
        if not self._running:
            return

        logger.info("Stopping telemetry bridge")

        if self.poller:
            await self.poller.stop()

        if self._ingest_task and not self._ingest_task.done():
            self._ingest_task.cancel()
            try:
                await self._ingest_task
            except asyncio.CancelledError:
                pass

        await self.exporter.aclose()

        if self.connection:
            await self.connection.drain()

        self._running = False
        self._shutdown_event.set()
        logger.info("Telemetry bridge stopped")

    async def poll_once(self) -> int:
        """
        Run a single poll cycle and wait for its exports.

        Returns:
            Number of snapshots accepted
        """
        if self.ingestor is None:
            await self.initialize()

        if not self.poller:
            logger.warning("KV polling unavailable, nothing to do")
            return 0

        accepted = await self.poller.poll_once()
        await self.exporter.wait_idle()
        logger.info(f"Poll cycle accepted {accepted} snapshots")
        return accepted

    async def close(self) -> None:
        """Release resources without a running loop (used after poll_once)."""
        await self.exporter.aclose()
        if self.connection:
            await self.connection.drain()

    def _on_ingest_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error:
            logger.error(f"Realtime ingestion stopped: {error}")

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info(f"{sig.name}, draining...")
        if self._stop_task is None or self._stop_task.done():
            self._stop_task = asyncio.create_task(self.stop())

    def _register_signal_handlers(self) -> None:
        """Register signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._handle_signal, sig)
            except (NotImplementedError, RuntimeError):
                # Not supported on this platform / outside the main thread
                logger.debug(f"Cannot install handler for {sig.name}")

    def get_stats(self) -> dict:
        """Get statistics for every pipeline stage."""
        return {
            "ingestor": self.ingestor.get_stats() if self.ingestor else None,
            "poller": self.poller.get_stats() if self.poller else None,
            "reconciler": self.reconciler.get_stats(),
            "exporter": self.exporter.get_stats(),
        }

    @property
    def is_running(self) -> bool:
        """Check if the service is running."""
        return self._running


async def run_bridge(config: BridgeConfig, poll_once: bool = False) -> None:
    """
    Run the bridge until shutdown.

    Args:
        config: Bridge configuration
        poll_once: Run one poll cycle and exit instead of running continuously
    """
    service = BridgeService(config)

    if poll_once:
        try:
            await service.poll_once()
        finally:
            await service.close()
        return

    try:
        await service.start()
    finally:
        await service.stop()
