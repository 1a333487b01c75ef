"""
Transport sessions.

IMPORTANT: Do not import both LiveKitSession and DailySession in the same
process as they have conflicting WebRTC library dependencies.

Import them separately based on which platform you need:
    from netperf_runner.sessions.daily import DailySession
    from netperf_runner.sessions.livekit import LiveKitSession
"""

from .base import (
    BackpressureError,
    ChannelOptions,
    IcePolicy,
    MediaConstraints,
    MediaTrack,
    SessionError,
    SessionFactory,
    TransportSession,
)

__all__ = [
    "BackpressureError",
    "ChannelOptions",
    "IcePolicy",
    "MediaConstraints",
    "MediaTrack",
    "SessionError",
    "SessionFactory",
    "TransportSession",
]
