"""
Statistical helpers and console formatting for network test results.
"""

import math
from collections.abc import Sequence

from pydantic import BaseModel
from shared.types import BandwidthResult, LatencyResult, TestResult, ThroughputResult


class DelaySummary(BaseModel):
    """Distribution of one-way delay samples (milliseconds)."""

    count: int
    average: float | None = None
    minimum: float | None = None
    maximum: float | None = None
    median: float | None = None
    p95: float | None = None
    jitter: float | None = None


def summarize_delays(delays: Sequence[float]) -> DelaySummary:
    """
    Summarize delay samples in arrival order.

    Args:
        delays: One-way delays in milliseconds, in the order they were received

    Returns:
        DelaySummary; every statistic is None when there are no samples
    """
    if len(delays) == 0:
        return DelaySummary(count=0)

    sorted_delays = sorted(delays)
    return DelaySummary(
        count=len(delays),
        average=_mean(delays),
        minimum=sorted_delays[0],
        maximum=sorted_delays[-1],
        median=_percentile(sorted_delays, 50),
        p95=_percentile(sorted_delays, 95),
        jitter=_calculate_jitter(delays),
    )


def has_enough_samples(count: int, expected: float, min_ratio: float) -> bool:
    """True unless fewer than ``min_ratio`` of the expected samples arrived."""
    return not count < min_ratio * expected


def is_unstable(min_delay: float, max_delay: float, offset_ms: float, factor: float) -> bool:
    """True when the worst delay exceeds ``factor`` times (best delay + offset)."""
    return max_delay > (min_delay + offset_ms) * factor


def _mean(numbers: Sequence[float]) -> float:
    """Calculate mean (average) of numbers."""
    if len(numbers) == 0:
        return 0.0
    return sum(numbers) / len(numbers)


def _percentile(sorted_numbers: Sequence[float], p: float) -> float:
    """
    Calculate percentile from sorted array.

    Args:
        sorted_numbers: Pre-sorted array of numbers
        p: Percentile to calculate (0-100)

    Returns:
        Percentile value using linear interpolation
    """
    if len(sorted_numbers) == 0:
        return 0.0
    if p <= 0:
        return sorted_numbers[0]
    if p >= 100:
        return sorted_numbers[-1]

    index = (p / 100) * (len(sorted_numbers) - 1)
    lower = math.floor(index)
    upper = math.ceil(index)
    weight = index % 1

    if lower == upper:
        return sorted_numbers[lower]

    return sorted_numbers[lower] * (1 - weight) + sorted_numbers[upper] * weight


def _calculate_jitter(delays: Sequence[float]) -> float:
    """Mean absolute difference between consecutive delay samples."""
    if len(delays) < 2:
        return 0.0

    differences = [abs(delays[i] - delays[i - 1]) for i in range(1, len(delays))]
    return _mean(differences)


def _ms(value: float | None) -> str:
    return "n/a" if value is None else f"{value:.2f} ms"


def _bps(value: float | None) -> str:
    return "n/a" if value is None else f"{value:.0f} bps"


def _status(result: TestResult) -> str:
    return "✅ PASSED" if result.passed else "❌ FAILED"


def format_throughput(result: ThroughputResult) -> str:
    lines = [
        "",
        f"📊 Data Throughput  {_status(result)}",
        "─" * 50,
        f"Sent:               {result.sent_bytes} bytes",
        f"Received:           {result.received_bytes} bytes",
        f"Transferred:        {result.received_kbits:.3f} kbit",
        f"Elapsed:            {result.elapsed_seconds:.3f} s",
    ]
    if result.bitrate_samples_kbps:
        lines.append(f"Peak bitrate:       {max(result.bitrate_samples_kbps):.3f} kbps")
        lines.append(f"Mean bitrate:       {_mean(result.bitrate_samples_kbps):.3f} kbps")
    lines.append("─" * 50)
    return "\n".join(lines)


def format_bandwidth(result: BandwidthResult) -> str:
    resolution = (
        "n/a"
        if result.frame_width is None
        else f"{result.frame_width}x{result.frame_height}"
    )
    ramp_up = "infinite" if math.isinf(result.ramp_up_time_ms) else f"{result.ramp_up_time_ms:.0f} ms"
    lines = [
        "",
        f"📊 Video Bandwidth  {_status(result)}",
        "─" * 50,
        f"Resolution:         {resolution}",
        f"BWE average:        {_bps(result.bandwidth_average_bps)}",
        f"BWE max:            {_bps(result.bandwidth_max_bps)}",
        f"Ramp-up time:       {ramp_up}",
        f"RTT average:        {_ms(result.rtt_average_ms)}",
        f"RTT max:            {_ms(result.rtt_max_ms)}",
        f"Lost packets:       {'n/a' if result.packets_lost is None else result.packets_lost}",
        f"Send bitrate:       {_bps(result.send_bitrate_average_bps)}"
        f" (std dev {_bps(result.send_bitrate_std_dev_bps)})",
        f"Failed polls:       {result.poll_errors}",
        "─" * 50,
    ]
    return "\n".join(lines)


def format_latency(result: LatencyResult) -> str:
    lines = [
        "",
        f"📊 Network Latency  {_status(result)}",
        "─" * 50,
        f"Samples:            {result.sample_count} / {result.expected_samples:.0f} expected",
        "",
        "One-way delay:",
        f"  Mean:             {_ms(result.average_delay_ms)}",
        f"  Median (P50):     {_ms(result.median_delay_ms)}",
        f"  P95:              {_ms(result.p95_delay_ms)}",
        f"  Min:              {_ms(result.min_delay_ms)}",
        f"  Max:              {_ms(result.max_delay_ms)}",
        f"  Jitter:           {_ms(result.jitter_ms)}",
        f"Stable path:        {'yes' if result.stable else 'no'}",
        "─" * 50,
    ]
    return "\n".join(lines)


def format_result(result: TestResult) -> str:
    """Format any test result for console output."""
    if isinstance(result, ThroughputResult):
        return format_throughput(result)
    if isinstance(result, BandwidthResult):
        return format_bandwidth(result)
    if isinstance(result, LatencyResult):
        return format_latency(result)
    return f"\n{result.test_name}  {_status(result)}"
