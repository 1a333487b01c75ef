"""
Network test runner: data channel throughput, video bandwidth estimation and
periodic one-way delay over WebRTC transports.
"""

from .aggregate import RunningAggregate, Sample
from .registry import TestCase, TestRegistry, build_default_registry
from .reporter import SeriesRecorder, TestReporter
from .runners.bandwidth import BandwidthSampler
from .runners.latency import LatencyProbe
from .runners.throughput import ThroughputPacer
from .stats import format_result

__all__ = [
    "BandwidthSampler",
    "LatencyProbe",
    "RunningAggregate",
    "Sample",
    "SeriesRecorder",
    "TestCase",
    "TestRegistry",
    "TestReporter",
    "ThroughputPacer",
    "build_default_registry",
    "format_result",
]
