"""
Mesh Telemetry Bridge.

Relays per-agent telemetry from NATS into VictoriaMetrics. Agents report
over two overlapping channels:

- realtime messages on ``mesh.telemetry.<agent>``
- their latest record in the ``MESH-TELEMETRY`` key-value bucket

The bridge reconciles both into one non-regressing snapshot per agent and
pushes each accepted snapshot in Prometheus text format.

Usage:
    from mesh_telemetry_bridge import BridgeConfig, BridgeService

    service = BridgeService(BridgeConfig.from_env())
    await service.start()
"""

from mesh_telemetry_bridge.config import BridgeConfig
from mesh_telemetry_bridge.encoder import PrometheusEncoder
from mesh_telemetry_bridge.exceptions import (
    BridgeError,
    ConfigurationError,
    SnapshotDecodeError,
)
from mesh_telemetry_bridge.exporter import VictoriaMetricsExporter
from mesh_telemetry_bridge.ingestor import PushIngestor
from mesh_telemetry_bridge.poller import SnapshotPoller
from mesh_telemetry_bridge.reconciler import AgentStateTable, StateReconciler
from mesh_telemetry_bridge.schemas import (
    AgentTelemetrySnapshot,
    SnapshotSource,
    decode_snapshot,
)
from mesh_telemetry_bridge.service import BridgeService, run_bridge

__all__ = [
    # Service
    "BridgeService",
    "BridgeConfig",
    "run_bridge",
    # Pipeline
    "PushIngestor",
    "SnapshotPoller",
    "StateReconciler",
    "AgentStateTable",
    "PrometheusEncoder",
    "VictoriaMetricsExporter",
    # Schemas
    "AgentTelemetrySnapshot",
    "SnapshotSource",
    "decode_snapshot",
    # Errors
    "BridgeError",
    "ConfigurationError",
    "SnapshotDecodeError",
]

__version__ = "1.0.0"
