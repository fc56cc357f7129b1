"""
VictoriaMetrics exporter.

Pushes encoded snapshots to the Prometheus import endpoint. Delivery
failures are logged and swallowed: a dropped sample is replaced by the
next report, so nothing here retries or raises.
"""

import asyncio
import logging
from typing import Optional, Set

import httpx

from mesh_telemetry_bridge.encoder import PrometheusEncoder
from mesh_telemetry_bridge.schemas import AgentTelemetrySnapshot, SnapshotSource

logger = logging.getLogger(__name__)

IMPORT_PATH = "/api/v1/import/prometheus"


class VictoriaMetricsExporter:
    """Encodes snapshots and writes them to VictoriaMetrics."""

    def __init__(
        self,
        vm_url: str,
        encoder: Optional[PrometheusEncoder] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 10.0,
    ):
        """
        Initialize exporter.

        Args:
            vm_url: Base URL of the VictoriaMetrics server
            encoder: Encoder to use (a default one is created if omitted)
            client: Shared HTTP client; created on first use if omitted
            timeout_seconds: Request timeout for the created client
        """
        self.import_url = vm_url.rstrip("/") + IMPORT_PATH
        self.encoder = encoder or PrometheusEncoder()
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._pending: Set[asyncio.Task] = set()
        self._push_count = 0
        self._failure_count = 0
        self._last_error: Optional[str] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._client

    async def push(self, payload: str) -> bool:
        """
        Write an exposition payload to VictoriaMetrics.

        Returns:
            True if the server accepted the payload, False otherwise
        """
        try:
            response = await self.client.post(
                self.import_url,
                content=payload.encode("utf-8"),
                headers={"Content-Type": "text/plain"},
            )
        except Exception as e:
            self._record_failure(f"VM push error: {e}")
            return False

        if not response.is_success:
            self._record_failure(f"VM push failed: {response.status_code} {response.text}")
            return False

        self._push_count += 1
        return True

    async def export(
        self, snapshot: AgentTelemetrySnapshot, source: Optional[SnapshotSource] = None
    ) -> bool:
        """Encode and push a single snapshot."""
        try:
            payload = self.encoder.encode(snapshot)
        except Exception as e:
            self._record_failure(f"Failed to encode telemetry for {snapshot.agent_id}: {e}")
            return False

        pushed = await self.push(payload)
        if pushed:
            via = f" ({source.value})" if source else ""
            logger.info(f"Pushed telemetry for {snapshot.agent_id}{via}")
        return pushed

    def schedule(
        self, snapshot: AgentTelemetrySnapshot, source: Optional[SnapshotSource] = None
    ) -> asyncio.Task:
        """
        Export a snapshot in the background.

        The returned task is tracked until it finishes so that pending
        exports can be joined or cancelled.
        """
        task = asyncio.create_task(self.export(snapshot, source))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for all scheduled exports to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel pending exports and close the HTTP client."""
        for task in list(self._pending):
            task.cancel()
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _record_failure(self, message: str) -> None:
        self._failure_count += 1
        self._last_error = message
        logger.error(message)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def get_stats(self) -> dict:
        """Get exporter statistics."""
        return {
            "pushed": self._push_count,
            "failed": self._failure_count,
            "pending": len(self._pending),
            "last_error": self._last_error,
        }
