import pytest
from conftest import standard_stats

from netperf_runner.telemetry import (
    NetworkSummaryExtractor,
    StandardStatsExtractor,
    TelemetryFormat,
    UnsupportedExtractor,
    UnsupportedTelemetryError,
    select_extractor,
)


def test_standard_stats_extraction():
    snapshot = StandardStatsExtractor().extract(
        standard_stats(1_700_000_000_000, 1_250_000, rtt_seconds=0.042, packets_lost=3),
    )

    assert snapshot.timestamp == 1_700_000_000_000
    assert snapshot.bandwidth_bps == 1_250_000
    assert snapshot.rtt_ms == pytest.approx(42)
    assert (snapshot.frame_width, snapshot.frame_height) == (1280, 720)
    assert snapshot.packets_lost == 3


def test_standard_stats_ignores_unselected_pairs_and_audio():
    report = [
        {"type": "candidate-pair", "state": "in-progress", "availableOutgoingBitrate": 999},
        {"type": "outbound-rtp", "kind": "audio", "frameWidth": 0, "frameHeight": 0},
        {"type": "remote-inbound-rtp", "kind": "video", "roundTripTime": 0.1},
        {"type": "codec", "mimeType": "video/VP8"},
    ]
    snapshot = StandardStatsExtractor().extract(report)

    assert snapshot.bandwidth_bps is None
    assert snapshot.frame_width is None
    assert snapshot.rtt_ms == pytest.approx(100)
    assert snapshot.timestamp is None


def test_standard_stats_rejects_summary_shape():
    with pytest.raises(UnsupportedTelemetryError):
        StandardStatsExtractor().extract({"stats": {"latest": {}}})


def test_network_summary_extraction():
    report = {
        "threshold": "good",
        "quality": 100,
        "stats": {
            "latest": {
                "timestamp": 5000,
                "availableOutgoingBitrate": 800_000,
                "networkRoundTripTime": 0.03,
                "totalSendPacketsLost": 7,
                "videoSendBitsPerSecond": 640_000,
                "sendBitsPerSecond": 700_000,
            }
        },
    }
    snapshot = NetworkSummaryExtractor().extract(report)

    assert snapshot.timestamp == 5000
    assert snapshot.bandwidth_bps == 800_000
    assert snapshot.rtt_ms == pytest.approx(30)
    assert snapshot.packets_lost == 7
    assert snapshot.send_bitrate_bps == 640_000
    assert snapshot.frame_width is None


def test_standard_stats_timestamp_falls_back_to_remote_report():
    report = [
        {"type": "remote-inbound-rtp", "kind": "video", "timestamp": 4200, "roundTripTime": 0.01},
    ]

    snapshot = StandardStatsExtractor().extract(report)

    assert snapshot.timestamp == 4200
    assert snapshot.rtt_ms == pytest.approx(10)


def test_network_summary_without_timestamp_or_video_bitrate():
    report = {"stats": {"latest": {"availableOutgoingBitrate": 1, "sendBitsPerSecond": 9000}}}

    snapshot = NetworkSummaryExtractor().extract(report)

    assert snapshot.timestamp is None
    assert snapshot.send_bitrate_bps == 9000


def test_network_summary_rejects_stats_list():
    with pytest.raises(UnsupportedTelemetryError):
        NetworkSummaryExtractor().extract(standard_stats(0, 1))


def test_unsupported_extractor_always_fails():
    with pytest.raises(UnsupportedTelemetryError):
        UnsupportedExtractor().extract(standard_stats(0, 1))


@pytest.mark.parametrize(
    ("declared", "expected"),
    [
        (TelemetryFormat.STANDARD_STATS, StandardStatsExtractor),
        ("network-summary", NetworkSummaryExtractor),
        (TelemetryFormat.UNRECOGNIZED, UnsupportedExtractor),
        ("vendor-blob", UnsupportedExtractor),
        (None, UnsupportedExtractor),
    ],
)
def test_select_extractor(declared, expected):
    assert isinstance(select_extractor(declared), expected)
