"""
Unit tests for the state reconciler.

Covers last-writer-wins with poll demotion: polled snapshots never roll
back a newer stored one, realtime snapshots always win.
"""

import pytest

from mesh_telemetry_bridge.reconciler import StateReconciler, is_stale
from mesh_telemetry_bridge.schemas import AgentTelemetrySnapshot, SnapshotSource

REALTIME = SnapshotSource.REALTIME
POLL = SnapshotSource.POLL


def snap(agent="a1", ts=None, **fields):
    return AgentTelemetrySnapshot(agent_id=agent, event_timestamp=ts, **fields)


class TestSubmit:
    """Test StateReconciler.submit decisions."""

    @pytest.mark.parametrize("source", [REALTIME, POLL])
    def test_first_snapshot_always_accepted(self, reconciler, source):
        snapshot = snap(ts=10)

        assert reconciler.submit(snapshot, source) is True
        assert reconciler.get("a1") is snapshot

    def test_older_poll_does_not_clobber_realtime(self, reconciler):
        s1 = snap(ts=200, uptime=2)
        s2 = snap(ts=100, uptime=1)

        reconciler.submit(s1, REALTIME)
        accepted = reconciler.submit(s2, POLL)

        assert accepted is False
        assert reconciler.get("a1") is s1

    def test_older_poll_does_not_clobber_poll(self, reconciler):
        s1 = snap(ts=200)
        reconciler.submit(s1, POLL)

        assert reconciler.submit(snap(ts=199), POLL) is False
        assert reconciler.get("a1") is s1

    @pytest.mark.parametrize(
        "first_ts,second_ts",
        [(100, 100), (100, 150), (None, 50), (100, None), (None, None)],
    )
    def test_poll_replaces_unless_strictly_older(self, reconciler, first_ts, second_ts):
        s1 = snap(ts=first_ts, uptime=1)
        s2 = snap(ts=second_ts, uptime=2)

        reconciler.submit(s1, POLL)
        accepted = reconciler.submit(s2, POLL)

        assert accepted is True
        assert reconciler.get("a1") is s2

    def test_realtime_always_overwrites(self, reconciler):
        """An older realtime report still beats a stored polled one."""
        polled = snap(ts=100)
        realtime = snap(ts=50)

        reconciler.submit(polled, POLL)
        accepted = reconciler.submit(realtime, REALTIME)

        assert accepted is True
        assert reconciler.get("a1") is realtime

    def test_replacement_is_whole_snapshot(self, reconciler):
        """Fields from the previous snapshot are not merged in."""
        reconciler.submit(snap(ts=1, uptime=10, session_count=3), REALTIME)
        reconciler.submit(snap(ts=2, uptime=20), REALTIME)

        current = reconciler.get("a1")
        assert current.uptime == 20
        assert current.session_count is None

    def test_agents_are_independent(self, reconciler):
        reconciler.submit(snap("a1", ts=500), REALTIME)

        assert reconciler.submit(snap("a2", ts=1), POLL) is True
        assert set(reconciler.table) == {"a1", "a2"}

    def test_idempotent_under_repeated_input(self, reconciler):
        snapshot = snap(ts=10)

        assert reconciler.submit(snapshot, POLL) is True
        assert reconciler.submit(snapshot, POLL) is True
        assert reconciler.table == {"a1": snapshot}


class TestSink:
    """Accepted snapshots are forwarded; rejected ones are not."""

    def test_accepted_snapshot_forwarded_with_source(self, reconciler, sink):
        snapshot = snap(ts=10)

        reconciler.submit(snapshot, REALTIME)

        assert sink.scheduled == [(snapshot, REALTIME)]

    def test_rejected_snapshot_not_forwarded(self, reconciler, sink):
        reconciler.submit(snap(ts=10), REALTIME)
        reconciler.submit(snap(ts=5), POLL)

        assert len(sink.scheduled) == 1

    def test_works_without_sink(self):
        reconciler = StateReconciler({})
        assert reconciler.submit(snap(ts=1), POLL) is True


class TestTableOwnership:
    def test_uses_table_passed_in(self):
        table = {}
        reconciler = StateReconciler(table)

        reconciler.submit(snap(ts=1), REALTIME)

        assert "a1" in table

    def test_stats(self, reconciler):
        reconciler.submit(snap(ts=10), REALTIME)
        reconciler.submit(snap(ts=5), POLL)
        reconciler.submit(snap("a2"), POLL)

        stats = reconciler.get_stats()

        assert stats["agents"] == 2
        assert stats["accepted"] == {"realtime": 1, "poll": 1}
        assert stats["rejected"] == {"realtime": 0, "poll": 1}


class TestIsStale:
    def test_nothing_stored(self):
        assert is_stale(snap(ts=1), None, POLL) is False

    def test_realtime_never_stale(self):
        assert is_stale(snap(ts=1), snap(ts=100), REALTIME) is False

    def test_poll_strictly_older(self):
        assert is_stale(snap(ts=1), snap(ts=100), POLL) is True

    def test_poll_equal(self):
        assert is_stale(snap(ts=100), snap(ts=100), POLL) is False
