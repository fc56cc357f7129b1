"""
Prometheus text encoding of agent telemetry snapshots.

Produces the line format accepted by VictoriaMetrics'
``/api/v1/import/prometheus`` endpoint:

    metric_name{agent="a1",version="1.0",model="m"} 42 1700000000000
"""

import time
from typing import Callable, List, Optional, Tuple, Union

from mesh_telemetry_bridge.schemas import AgentTelemetrySnapshot

UNKNOWN = "unknown"
UP_METRIC = "mesh_agent_up"

Value = Union[int, float]


def escape_label_value(value: str) -> str:
    """Escape a label value for the exposition format."""
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def format_labels(snapshot: AgentTelemetrySnapshot) -> str:
    pairs = (
        ("agent", snapshot.agent_id),
        ("version", snapshot.version or UNKNOWN),
        ("model", snapshot.model_name or UNKNOWN),
    )
    return ",".join(f'{name}="{escape_label_value(value)}"' for name, value in pairs)


def format_value(value: Value) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def collect_samples(snapshot: AgentTelemetrySnapshot) -> List[Tuple[str, Value]]:
    """
    List (metric, value) pairs for every measurement present in the snapshot.

    Absent groups and absent fields inside a present group contribute
    nothing. Legacy flat session counters are emitted alongside the nested
    ones under the same metric names.
    """
    candidates: List[Tuple[str, Optional[Value]]] = []

    if snapshot.sessions:
        candidates.append(("mesh_agent_sessions_total", snapshot.sessions.total))
        candidates.append(("mesh_agent_sessions_active", snapshot.sessions.active))
    candidates.append(("mesh_agent_sessions_total", snapshot.session_count))
    candidates.append(("mesh_agent_sessions_active", snapshot.active_count))

    candidates.append(("mesh_agent_uptime_seconds", snapshot.uptime))

    if snapshot.sub_agents:
        candidates.append(("mesh_agent_subagents_running", snapshot.sub_agents.running))
        candidates.append(("mesh_agent_subagents_completed", snapshot.sub_agents.completed))

    if snapshot.messages:
        candidates.append(("mesh_agent_messages_sent_total", snapshot.messages.sent))
        candidates.append(("mesh_agent_messages_received_total", snapshot.messages.received))
        candidates.append(("mesh_agent_errors_total", snapshot.messages.errors))

    if snapshot.tokens:
        candidates.append(("mesh_agent_tokens_input_total", snapshot.tokens.total_input))
        candidates.append(("mesh_agent_tokens_output_total", snapshot.tokens.total_output))
        candidates.append(("mesh_agent_tokens_24h_input", snapshot.tokens.last_24h_input))
        candidates.append(("mesh_agent_tokens_24h_output", snapshot.tokens.last_24h_output))

    if snapshot.system:
        candidates.append(("mesh_agent_cpu_percent", snapshot.system.cpu_percent))
        candidates.append(("mesh_agent_memory_mb", snapshot.system.memory_mb))
        candidates.append(("mesh_agent_memory_percent", snapshot.system.memory_percent))

    return [(name, value) for name, value in candidates if value is not None]


class PrometheusEncoder:
    """Encodes snapshots into newline-terminated exposition text."""

    def __init__(self, clock: Callable[[], float] = time.time):
        """
        Initialize encoder.

        Args:
            clock: Source of the current time in seconds, used when a
                snapshot carries no timestamp of its own
        """
        self.clock = clock

    def timestamp_ms(self, snapshot: AgentTelemetrySnapshot) -> int:
        seconds = snapshot.event_timestamp
        if seconds is None:
            seconds = int(self.clock())
        return int(seconds) * 1000

    def encode(self, snapshot: AgentTelemetrySnapshot) -> str:
        """
        Encode one snapshot.

        Returns:
            One line per present measurement followed by the ``mesh_agent_up``
            liveness line, each terminated by a newline
        """
        labels = format_labels(snapshot)
        ts = self.timestamp_ms(snapshot)

        samples = collect_samples(snapshot)
        samples.append((UP_METRIC, 1))

        return "".join(
            f"{name}{{{labels}}} {format_value(value)} {ts}\n" for name, value in samples
        )
