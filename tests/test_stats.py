import math

import pytest

from netperf_runner.reporter import TestReporter
from netperf_runner.stats import format_result, summarize_delays
from shared.types import (
    BandwidthResult,
    LatencyResult,
    ReportLevel,
    TestResult,
    ThroughputResult,
)


def test_percentiles_interpolate():
    summary = summarize_delays([float(n) for n in range(1, 101)])

    assert summary.median == 50.5
    assert summary.p95 == pytest.approx(95.05)
    assert summary.jitter == 1


def test_single_sample_has_no_jitter():
    summary = summarize_delays([42.0])

    assert summary.minimum == summary.maximum == summary.median == 42
    assert summary.jitter == 0


def test_format_throughput():
    result = ThroughputResult(
        test_name="data-throughput",
        passed=True,
        sent_bytes=5120,
        received_bytes=5120,
        elapsed_seconds=5.004,
        received_kbits=40.96,
        bitrate_samples_kbps=[8.0, 9.0],
    )

    text = format_result(result)

    assert "Data Throughput" in text
    assert "PASSED" in text
    assert "Transferred:        40.960 kbit" in text
    assert "Peak bitrate:       9.000 kbps" in text
    assert "Mean bitrate:       8.500 kbps" in text


def test_format_bandwidth_infinite_ramp_up():
    result = BandwidthResult(
        test_name="video-bandwidth",
        passed=False,
        frame_width=640,
        frame_height=480,
        bandwidth_average_bps=400_000,
        bandwidth_max_bps=500_000,
    )

    text = format_result(result)

    assert "FAILED" in text
    assert "Resolution:         640x480" in text
    assert "Ramp-up time:       infinite" in text
    assert "RTT average:        n/a" in text
    assert "Send bitrate:       n/a (std dev n/a)" in text
    assert math.isinf(result.ramp_up_time_ms)


def test_format_latency():
    result = LatencyResult(
        test_name="network-latency",
        passed=True,
        sample_count=48,
        expected_samples=50,
        average_delay_ms=12.5,
        min_delay_ms=10,
        max_delay_ms=20,
        enough_samples=True,
        stable=True,
    )

    text = format_result(result)

    assert "Samples:            48 / 50 expected" in text
    assert "  Mean:             12.50 ms" in text
    assert "  P95:              n/a" in text
    assert "Stable path:        yes" in text


def test_format_plain_result():
    assert format_result(TestResult(test_name="custom", passed=True)).strip() == (
        "custom  ✅ PASSED"
    )


def test_reporter_tracks_levels_and_errors():
    reporter = TestReporter("data-throughput")

    reporter.report_info("starting")
    reporter.report_success("ok")
    assert not reporter.has_errors

    reporter.report_error("bad")
    assert reporter.has_errors
    assert reporter.messages(ReportLevel.ERROR) == ["bad"]
    assert [e.level for e in reporter.entries] == [
        ReportLevel.INFO,
        ReportLevel.SUCCESS,
        ReportLevel.ERROR,
    ]


def test_reporter_clamps_progress():
    reporter = TestReporter("t")

    reporter.set_progress(140)
    assert reporter.progress_percent == 100
    reporter.set_progress(-3)
    assert reporter.progress_percent == 0


async def test_reporter_done_is_terminal_once():
    reporter = TestReporter("t")

    reporter.done()
    reporter.done()
    await reporter.wait_done()

    assert reporter.is_done
    assert reporter.done_count == 2
    assert reporter.progress_percent == 100
