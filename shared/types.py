"""
Shared type definitions for the network test runner.

This module contains the Pydantic models used across the measurement runners,
the transport sessions and the CLI: probe payloads, per-test configuration,
report entries and results.
"""

import math
import uuid
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


# Protocol message types
class ProbeMessage(BaseModel):
    """Timestamped probe sent over the unordered latency channel."""

    type: Literal["probe"] = "probe"
    timestamp: float = Field(description="Sender clock at send time (ms)")


# Reporting types
class ReportLevel(str, Enum):
    """Severity of a report entry."""

    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"
    FATAL = "fatal"


class ReportEntry(BaseModel):
    """One line reported by a test to the harness."""

    level: ReportLevel
    message: str


class DelaySample(BaseModel):
    """One received probe: its embedded send time and observed one-way delay (ms)."""

    model_config = ConfigDict(frozen=True)

    send_timestamp: float
    delay_ms: float


class DataPoint(BaseModel):
    """A live-chart data point."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float


# Test configuration types
class ThroughputConfig(BaseModel):
    """Configuration for the data channel saturation test."""

    duration_ms: int = Field(default=5000, ge=1)
    packet_size: int = Field(default=1024, ge=1)
    max_packets_per_tick: int = Field(default=1, ge=1)
    buffer_limit: int | None = Field(
        default=None, ge=1, description="Buffered-but-unsent byte ceiling (default: one tick's worth)"
    )
    tick_interval_ms: float = Field(default=1, ge=0)
    bitrate_interval_ms: float = Field(default=1000, gt=0)
    drain_timeout_ms: float = Field(default=10_000, gt=0)

    @model_validator(mode="after")
    def _default_buffer_limit(self) -> "ThroughputConfig":
        if self.buffer_limit is None:
            self.buffer_limit = self.packet_size * self.max_packets_per_tick
        return self


class BandwidthConfig(BaseModel):
    """Configuration for the telemetry polling test."""

    duration_ms: int = Field(default=40_000, ge=1)
    poll_interval_ms: int = Field(default=100, ge=1)
    max_video_bitrate_kbps: int = Field(default=2000, ge=1)
    ramp_up_fraction: float = Field(default=0.75, gt=0, le=1)
    min_width: int = Field(default=2, ge=0)
    min_height: int = Field(default=2, ge=0)
    capture_width: int = Field(default=1280, ge=1)
    capture_height: int = Field(default=720, ge=1)

    @property
    def ramp_up_threshold_bps(self) -> float:
        return self.ramp_up_fraction * self.max_video_bitrate_kbps * 1000


class LatencyConfig(BaseModel):
    """Configuration for the periodic one-way delay test."""

    duration_ms: int = Field(default=5 * 60 * 1000, ge=1)
    interval_ms: int = Field(default=100, ge=1)
    min_sample_ratio: float = Field(default=0.8, ge=0, le=1)
    stability_offset_ms: float = Field(default=100, ge=0)
    stability_factor: float = Field(default=2, gt=0)

    @property
    def expected_samples(self) -> float:
        return self.duration_ms / self.interval_ms


# Result types
class TestResult(BaseModel):
    """Fields shared by every test result."""

    __test__ = False

    test_name: str
    passed: bool
    entries: list[ReportEntry] = Field(default_factory=list)
    run_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()), description="Unique identifier for this test run"
    )


class ThroughputResult(TestResult):
    """Data channel saturation result."""

    sent_bytes: int
    received_bytes: int
    elapsed_seconds: float
    received_kbits: float
    bitrate_samples_kbps: list[float] = Field(default_factory=list)


class BandwidthResult(TestResult):
    """Bandwidth estimation result."""

    frame_width: int | None = None
    frame_height: int | None = None
    bandwidth_average_bps: float | None = None
    bandwidth_max_bps: float | None = None
    ramp_up_time_ms: float = math.inf
    rtt_average_ms: float | None = None
    rtt_max_ms: float | None = None
    packets_lost: int | None = None
    send_bitrate_average_bps: float | None = None
    send_bitrate_std_dev_bps: float | None = None
    poll_errors: int = 0


class LatencyResult(TestResult):
    """Periodic one-way delay result."""

    samples: list[DelaySample] = Field(default_factory=list)
    sample_count: int = 0
    expected_samples: float = 0
    average_delay_ms: float | None = None
    min_delay_ms: float | None = None
    max_delay_ms: float | None = None
    median_delay_ms: float | None = None
    p95_delay_ms: float | None = None
    jitter_ms: float | None = None
    enough_samples: bool = False
    stable: bool = True
