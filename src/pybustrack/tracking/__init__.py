"""Tracking engine.

This package turns a stream of raw position fixes into session stats, a
bounded activity history, signal alerts and remote state overwrites. The
:class:`~pybustrack.tracking.session.TrackingSession` state machine is the
only component allowed to sequence them.
"""

from pybustrack.tracking.accumulator import SessionAccumulator, accumulate
from pybustrack.tracking.history import ActivityHistory, decode_history, encode_history, prepend_entry
from pybustrack.tracking.publisher import PublishResult, RemoteStatePublisher
from pybustrack.tracking.session import FixOutcome, TrackingSession, TrackingState
from pybustrack.tracking.signal import SignalQualityMonitor, SignalReport, is_degraded

__all__ = [
    "ActivityHistory",
    "FixOutcome",
    "PublishResult",
    "RemoteStatePublisher",
    "SessionAccumulator",
    "SignalQualityMonitor",
    "SignalReport",
    "TrackingSession",
    "TrackingState",
    "accumulate",
    "decode_history",
    "encode_history",
    "is_degraded",
    "prepend_entry",
]
