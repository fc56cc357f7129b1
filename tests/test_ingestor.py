"""
Unit tests for realtime ingestion.
"""

import logging
from unittest.mock import Mock

import pytest

from conftest import FakeFeed, payload
from mesh_telemetry_bridge.ingestor import PushIngestor, agent_id_from_subject
from mesh_telemetry_bridge.protocols import FeedMessage
from mesh_telemetry_bridge.schemas import AgentTelemetrySnapshot, SnapshotSource


@pytest.mark.parametrize(
    "subject,expected",
    [
        ("mesh.telemetry.alpha", "alpha"),
        ("mesh.telemetry.agent-7", "agent-7"),
        ("alpha", "alpha"),
    ],
)
def test_agent_id_from_subject(subject, expected):
    assert agent_id_from_subject(subject) == expected


class TestPushIngestor:
    """Test PushIngestor message handling."""

    @pytest.mark.asyncio
    async def test_messages_submitted_as_realtime(self, reconciler, sink):
        feed = FakeFeed([FeedMessage("mesh.telemetry.alpha", payload(agent="alpha", ts=10))])

        await PushIngestor(feed, reconciler).run()

        snapshot, source = sink.scheduled[0]
        assert snapshot.agent_id == "alpha"
        assert source is SnapshotSource.REALTIME
        assert reconciler.get("alpha") is snapshot

    @pytest.mark.asyncio
    async def test_identity_falls_back_to_subject(self, reconciler):
        feed = FakeFeed([FeedMessage("mesh.telemetry.beta", payload(uptime=5))])

        await PushIngestor(feed, reconciler).run()

        assert reconciler.get("beta").uptime == 5

    @pytest.mark.asyncio
    async def test_invalid_payload_does_not_stop_loop(self, reconciler, caplog):
        """A malformed message is dropped and the next one is still processed."""
        feed = FakeFeed(
            [
                FeedMessage("mesh.telemetry.alpha", b"{not json"),
                FeedMessage("mesh.telemetry.alpha", b"[1, 2, 3]"),
                FeedMessage("mesh.telemetry.beta", payload(agent="beta", uptime=1)),
            ]
        )
        ingestor = PushIngestor(feed, reconciler)

        with caplog.at_level(logging.WARNING):
            await ingestor.run()

        assert reconciler.get("beta") is not None
        assert reconciler.get("alpha") is None
        assert "Dropping malformed telemetry on mesh.telemetry.alpha" in caplog.text
        assert ingestor.get_stats() == {"processed": 1, "decode_errors": 2, "errors": 0}

    @pytest.mark.asyncio
    async def test_non_finite_timestamp_keeps_record(self, reconciler):
        feed = FakeFeed(
            [
                FeedMessage("mesh.telemetry.a1", b'{"agent": "a1", "ts": NaN, "uptime": 5}'),
                FeedMessage("mesh.telemetry.a2", b'{"agent": "a2", "ts": 1e400, "uptime": 6}'),
            ]
        )
        ingestor = PushIngestor(feed, reconciler)

        await ingestor.run()

        assert reconciler.get("a1").uptime == 5
        assert reconciler.get("a2").event_timestamp is None
        assert ingestor.get_stats() == {"processed": 2, "decode_errors": 0, "errors": 0}

    @pytest.mark.asyncio
    async def test_unexpected_error_does_not_stop_loop(self, caplog):
        reconciler = Mock()
        reconciler.submit.side_effect = [RuntimeError("table exploded"), True]
        feed = FakeFeed(
            [
                FeedMessage("mesh.telemetry.a1", payload(agent="a1")),
                FeedMessage("mesh.telemetry.a2", payload(agent="a2")),
            ]
        )
        ingestor = PushIngestor(feed, reconciler)

        with caplog.at_level(logging.ERROR):
            await ingestor.run()

        assert reconciler.submit.call_count == 2
        assert "Sub error on mesh.telemetry.a1: table exploded" in caplog.text
        assert ingestor.get_stats()["errors"] == 1

    def test_handle_message_returns_acceptance(self, reconciler):
        ingestor = PushIngestor(FakeFeed([]), reconciler)

        accepted = ingestor.handle_message(
            FeedMessage("mesh.telemetry.a1", payload(agent="a1", ts=5))
        )

        assert accepted is True
        assert isinstance(reconciler.get("a1"), AgentTelemetrySnapshot)

    def test_realtime_overrides_newer_polled_snapshot(self, reconciler):
        polled = AgentTelemetrySnapshot(agent_id="a1", event_timestamp=100)
        reconciler.submit(polled, SnapshotSource.POLL)
        ingestor = PushIngestor(FakeFeed([]), reconciler)

        ingestor.handle_message(FeedMessage("mesh.telemetry.a1", payload(agent="a1", ts=50)))

        assert reconciler.get("a1").event_timestamp == 50
