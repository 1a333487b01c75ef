"""
Network test runners.
"""

from .bandwidth import BandwidthSampler
from .base import BaseNetworkTest
from .latency import LatencyProbe
from .throughput import ThroughputPacer

__all__ = ["BandwidthSampler", "BaseNetworkTest", "LatencyProbe", "ThroughputPacer"]
