"""
Pytest configuration and fixtures for the telemetry bridge tests.
"""

import json
from typing import Dict, List, Optional

import pytest

from mesh_telemetry_bridge.protocols import FeedMessage
from mesh_telemetry_bridge.reconciler import StateReconciler


class FakeStore:
    """In-memory snapshot store."""

    def __init__(self, entries: Optional[Dict[str, Optional[bytes]]] = None):
        self.entries = dict(entries or {})
        self.fail_keys = False
        self.fail_get: set = set()
        self.get_calls: List[str] = []

    async def keys(self) -> List[str]:
        if self.fail_keys:
            raise ConnectionError("keys unavailable")
        return list(self.entries)

    async def get(self, key: str) -> Optional[bytes]:
        self.get_calls.append(key)
        if key in self.fail_get:
            raise ConnectionError(f"cannot fetch {key}")
        return self.entries.get(key)


class FakeFeed:
    """Feed that yields a fixed list of messages and then ends."""

    def __init__(self, messages: List[FeedMessage]):
        self._messages = list(messages)

    async def messages(self):
        for message in self._messages:
            yield message


class RecordingSink:
    """Collects snapshots the reconciler accepts."""

    def __init__(self):
        self.scheduled = []

    def schedule(self, snapshot, source=None):
        self.scheduled.append((snapshot, source))


def payload(**fields) -> bytes:
    return json.dumps(fields).encode("utf-8")


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def reconciler(sink):
    return StateReconciler({}, sink=sink)


@pytest.fixture
def full_record():
    """A report with every measurement group populated."""
    return {
        "agent": "alpha",
        "ts": 1700000000,
        "version": "2.3.1",
        "model": "claude-sonnet",
        "sessions": {"total": 12, "active": 3},
        "uptime": 86400,
        "subAgents": {"running": 2, "completed": 40},
        "messages": {"sent": 150, "received": 149, "errors": 1},
        "tokens": {
            "totalInput": 500000,
            "totalOutput": 120000,
            "last24hInput": 20000,
            "last24hOutput": 4000,
        },
        "system": {"cpuPercent": 15.5, "memoryMB": 512, "memoryPercent": 6.25},
    }
