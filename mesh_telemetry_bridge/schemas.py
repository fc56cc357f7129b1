"""
Telemetry schemas for the mesh bridge.

Agents publish a JSON record per report. Every measurement is optional and
absence is meaningful (an absent counter is not the same as zero), so every
field defaults to None. A field with the wrong shape is dropped rather than
failing the whole record.
"""

import json
import math
from enum import Enum
from typing import Annotated, Any, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictFloat,
    StrictInt,
    StrictStr,
    ValidationError,
    ValidatorFunctionWrapHandler,
    WrapValidator,
)

from mesh_telemetry_bridge.exceptions import SnapshotDecodeError


def _drop_invalid(value: Any, handler: ValidatorFunctionWrapHandler) -> Any:
    """Validate normally, but turn a malformed value into None."""
    try:
        return handler(value)
    except ValidationError:
        return None


def _finite_number(value: Any, handler: ValidatorFunctionWrapHandler) -> Any:
    """Like ``_drop_invalid``, but NaN and infinities are malformed too."""
    value = _drop_invalid(value, handler)
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def _whole_seconds(value: Any, handler: ValidatorFunctionWrapHandler) -> Any:
    value = _finite_number(value, handler)
    return None if value is None else int(value)


Number = Annotated[Optional[Union[StrictInt, StrictFloat]], WrapValidator(_finite_number)]
Timestamp = Annotated[Optional[Union[StrictInt, StrictFloat]], WrapValidator(_whole_seconds)]
Text = Annotated[Optional[StrictStr], WrapValidator(_drop_invalid)]


# ============================================================================
# ENUMS
# ============================================================================


class SnapshotSource(str, Enum):
    """Which channel delivered a snapshot."""

    REALTIME = "realtime"
    POLL = "poll"


# ============================================================================
# MEASUREMENT GROUPS
# ============================================================================


class _Group(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class SessionCounts(_Group):
    total: Number = None
    active: Number = None


class SubAgentCounts(_Group):
    running: Number = None
    completed: Number = None


class MessageCounters(_Group):
    sent: Number = None
    received: Number = None
    errors: Number = None


class TokenCounters(_Group):
    """Lifetime and trailing-24h token usage."""

    total_input: Number = Field(None, alias="totalInput")
    total_output: Number = Field(None, alias="totalOutput")
    last_24h_input: Number = Field(None, alias="last24hInput")
    last_24h_output: Number = Field(None, alias="last24hOutput")


class ResourceUsage(_Group):
    """Host resource usage reported by the agent process."""

    cpu_percent: Number = Field(None, alias="cpuPercent")
    memory_mb: Number = Field(None, alias="memoryMB")
    memory_percent: Number = Field(None, alias="memoryPercent")


# ============================================================================
# SNAPSHOT
# ============================================================================


class AgentTelemetrySnapshot(BaseModel):
    """
    One agent's complete telemetry at a point in time.

    Snapshots are immutable. The reconciler replaces them whole and never
    merges fields from two snapshots of the same agent.
    """

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, extra="ignore", protected_namespaces=()
    )

    agent_id: str = Field(min_length=1, alias="agent")
    event_timestamp: Timestamp = Field(None, alias="ts", description="Seconds since epoch")
    version: Text = None
    model_name: Text = Field(None, alias="model")

    sessions: Annotated[Optional[SessionCounts], WrapValidator(_drop_invalid)] = None
    session_count: Number = Field(None, alias="sessionCount")
    active_count: Number = Field(None, alias="activeCount")
    uptime: Number = Field(None, description="Uptime in seconds")
    sub_agents: Annotated[Optional[SubAgentCounts], WrapValidator(_drop_invalid)] = Field(
        None, alias="subAgents"
    )
    messages: Annotated[Optional[MessageCounters], WrapValidator(_drop_invalid)] = None
    tokens: Annotated[Optional[TokenCounters], WrapValidator(_drop_invalid)] = None
    system: Annotated[Optional[ResourceUsage], WrapValidator(_drop_invalid)] = None

    def to_payload(self) -> str:
        """Encode back to the wire format agents publish."""
        return self.model_dump_json(by_alias=True, exclude_none=True)


def decode_snapshot(
    payload: Union[bytes, str], fallback_agent_id: Optional[str] = None
) -> AgentTelemetrySnapshot:
    """
    Decode a JSON telemetry payload.

    The record's own ``agent`` field names the agent. When it is missing,
    ``fallback_agent_id`` (subject tail or store key) is used instead.

    Raises:
        SnapshotDecodeError: payload is not a JSON object or has no identity
    """
    try:
        data = json.loads(payload)
    except ValueError as e:
        raise SnapshotDecodeError(f"Invalid JSON payload: {e}") from e

    if not isinstance(data, dict):
        raise SnapshotDecodeError(f"Expected a JSON object, got {type(data).__name__}")

    agent = data.get("agent")
    if not isinstance(agent, str) or not agent:
        agent = fallback_agent_id
    if not agent:
        raise SnapshotDecodeError("Payload has no agent identity")

    try:
        return AgentTelemetrySnapshot.model_validate({**data, "agent": agent})
    except ValidationError as e:
        raise SnapshotDecodeError(f"Invalid telemetry record for {agent}: {e}") from e
