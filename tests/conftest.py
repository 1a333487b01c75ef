"""
Shared fixtures: an in-memory loopback session and a controllable clock.
"""

import asyncio
from collections.abc import Iterable
from typing import Any

import pytest

from netperf_runner.reporter import TestReporter
from netperf_runner.sessions.base import (
    BackpressureError,
    ChannelOptions,
    IcePolicy,
    MediaConstraints,
    TransportSession,
)
from netperf_runner.telemetry import TelemetryFormat


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class FakeTrack:
    def __init__(self) -> None:
        self.stopped = 0

    async def stop(self) -> None:
        self.stopped += 1


class FakeSession(TransportSession):
    """
    Loopback session kept entirely in memory.

    Sent payloads sit in the send buffer until ``flush()`` moves them onto the
    wire; ``deliver()`` hands wire payloads to the receiver. With
    ``auto_deliver`` both happen on the next event loop iteration.
    """

    def __init__(
        self,
        ice_policy: IcePolicy = IcePolicy.ALL,
        *,
        telemetry_format: TelemetryFormat = TelemetryFormat.STANDARD_STATS,
        stats: Iterable[Any] = (),
        fail_establish: Exception | None = None,
        auto_deliver: bool = False,
        refuse_sends: bool = False,
        send_error: Exception | None = None,
    ) -> None:
        super().__init__(ice_policy)
        self.telemetry_format = telemetry_format
        self.stats = list(stats)
        self.fail_establish = fail_establish
        self.auto_deliver = auto_deliver
        self.refuse_sends = refuse_sends
        self.send_error = send_error

        self.channel: ChannelOptions | None = None
        self.established = False
        self.close_count = 0
        self.sent: list[bytes] = []
        self.buffered: list[bytes] = []
        self.on_wire: list[bytes] = []
        self.stats_calls = 0
        self.track: FakeTrack | None = None
        self.media_constraints: MediaConstraints | None = None

    async def establish(self, channel: ChannelOptions | None = None) -> None:
        if self.fail_establish is not None:
            raise self.fail_establish
        self.channel = channel
        self.established = True

    async def close(self) -> None:
        self.close_count += 1

    @property
    def buffered_amount(self) -> int:
        return sum(len(p) for p in self.buffered)

    def send(self, payload: bytes) -> None:
        if self.refuse_sends:
            raise BackpressureError("refused")
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(payload)
        self.buffered.append(payload)
        if self.auto_deliver:
            asyncio.get_running_loop().call_soon(self._loop_back)

    def _loop_back(self) -> None:
        self.flush()
        self.deliver()

    def flush(self) -> None:
        self.on_wire.extend(self.buffered)
        self.buffered.clear()

    def deliver(self, count: int | None = None) -> None:
        batch = self.on_wire if count is None else self.on_wire[:count]
        self.on_wire = [] if count is None else self.on_wire[count:]
        for payload in batch:
            self.dispatch_message(payload)

    async def get_stats(self) -> Any:
        self.stats_calls += 1
        if not self.stats:
            return []
        item = self.stats.pop(0) if len(self.stats) > 1 else self.stats[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def acquire_media(self, constraints: MediaConstraints) -> FakeTrack:
        self.media_constraints = constraints
        self.track = FakeTrack()
        return self.track


def standard_stats(
    timestamp: float,
    bandwidth_bps: float,
    rtt_seconds: float = 0.05,
    width: int = 1280,
    height: int = 720,
    packets_lost: int = 0,
) -> list[dict[str, Any]]:
    """Build a standard stats snapshot."""
    return [
        {
            "type": "candidate-pair",
            "timestamp": timestamp,
            "state": "succeeded",
            "availableOutgoingBitrate": bandwidth_bps,
            "currentRoundTripTime": rtt_seconds,
        },
        {
            "type": "outbound-rtp",
            "timestamp": timestamp,
            "kind": "video",
            "frameWidth": width,
            "frameHeight": height,
        },
        {
            "type": "remote-inbound-rtp",
            "timestamp": timestamp,
            "kind": "video",
            "packetsLost": packets_lost,
            "roundTripTime": rtt_seconds,
        },
    ]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def reporter() -> TestReporter:
    return TestReporter("test")


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()
