"""
Error taxonomy shared by the sensor, transport, scoring engine and store.

None of these are fatal to the process: callers log them and carry on with
the next tick.
"""

from __future__ import annotations


class DriftError(Exception):
    """Base class for every error raised by the pipeline."""


class TransportUnavailable(DriftError):
    """The receiving context is not attached (or has gone away)."""


class EngineNotReady(DriftError):
    """A prediction was requested before the scoring engine finished loading."""


class EngineLoadError(DriftError):
    """Loading the scoring backend failed; a fresh LOAD_MODEL is required."""


class PredictError(DriftError):
    """The scoring engine rejected or failed a prediction request."""


class StorageError(DriftError):
    """Reading from or writing to the key-value store failed."""
