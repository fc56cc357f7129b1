"""
Exception types for the telemetry bridge.

Only configuration and startup problems are fatal. Everything else is
logged at the component boundary where it happens.
"""


class BridgeError(Exception):
    """Base class for all bridge errors."""


class ConfigurationError(BridgeError):
    """Configuration is invalid or a required value is missing."""


class SnapshotDecodeError(BridgeError):
    """An inbound telemetry payload could not be decoded."""
