"""
Telemetry snapshot extraction.

Transports expose their internal counters in one of two shapes:

* ``STANDARD_STATS``: a list of W3C-style stats reports, each a mapping with a
  ``type`` (``candidate-pair``, ``outbound-rtp``, ``remote-inbound-rtp``...),
  a millisecond ``timestamp`` and camelCase counters.
* ``NETWORK_SUMMARY``: a single mapping of pre-aggregated network figures under
  ``stats.latest``.

The format is chosen once per session from the session's declared capability.
A session that declares neither gets the unsupported extractor, which fails
every poll with UnsupportedTelemetryError instead of returning zeros.

Snapshot timestamps always come from the telemetry itself (epoch milliseconds).
A snapshot without one keeps a None timestamp and is not folded into any
time series.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any

from pydantic import BaseModel


class TelemetryFormat(str, Enum):
    """Known telemetry snapshot shapes."""

    STANDARD_STATS = "standard-stats"
    NETWORK_SUMMARY = "network-summary"
    UNRECOGNIZED = "unrecognized"


class UnsupportedTelemetryError(Exception):
    """Raised when a telemetry snapshot does not match the expected shape."""


class BandwidthSnapshot(BaseModel):
    """Numeric fields pulled out of one telemetry snapshot."""

    timestamp: float | None = None
    bandwidth_bps: float | None = None
    rtt_ms: float | None = None
    frame_width: int | None = None
    frame_height: int | None = None
    packets_lost: int | None = None
    send_bitrate_bps: float | None = None


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


class TelemetryExtractor(ABC):
    """Turns a raw snapshot into a BandwidthSnapshot."""

    format: TelemetryFormat

    @abstractmethod
    def extract(self, report: Any) -> BandwidthSnapshot:
        """
        Extract bandwidth, RTT, resolution and loss from a snapshot.

        Args:
            report: Raw snapshot as returned by the session

        Raises:
            UnsupportedTelemetryError: If the snapshot has the wrong shape
        """


class StandardStatsExtractor(TelemetryExtractor):
    format = TelemetryFormat.STANDARD_STATS

    def extract(self, report: Any) -> BandwidthSnapshot:
        if isinstance(report, Mapping) or not isinstance(report, Sequence):
            raise UnsupportedTelemetryError(
                f"Expected a list of stats reports, got {type(report).__name__}"
            )

        snapshot = BandwidthSnapshot()
        remote_rtt_ms: float | None = None
        remote_timestamp: float | None = None
        for stat in report:
            if not isinstance(stat, Mapping):
                raise UnsupportedTelemetryError(f"Stats entry is not a mapping: {stat!r}")
            stat_type = stat.get("type")

            if stat_type == "candidate-pair" and stat.get("state", "succeeded") == "succeeded":
                bandwidth = _number(stat.get("availableOutgoingBitrate"))
                if bandwidth is not None:
                    snapshot.bandwidth_bps = bandwidth
                snapshot.timestamp = _number(stat.get("timestamp"))
                rtt = _number(stat.get("currentRoundTripTime"))
                if rtt is not None:
                    snapshot.rtt_ms = rtt * 1000
            elif stat_type == "outbound-rtp" and stat.get("kind", "video") == "video":
                width = _number(stat.get("frameWidth"))
                height = _number(stat.get("frameHeight"))
                if width is not None and height is not None:
                    snapshot.frame_width = int(width)
                    snapshot.frame_height = int(height)
            elif stat_type == "remote-inbound-rtp" and stat.get("kind", "video") == "video":
                lost = _number(stat.get("packetsLost"))
                if lost is not None:
                    snapshot.packets_lost = int(lost)
                rtt = _number(stat.get("roundTripTime"))
                if rtt is not None:
                    remote_rtt_ms = rtt * 1000
                remote_timestamp = _number(stat.get("timestamp"))

        if snapshot.rtt_ms is None:
            snapshot.rtt_ms = remote_rtt_ms
        if snapshot.timestamp is None:
            snapshot.timestamp = remote_timestamp
        return snapshot


class NetworkSummaryExtractor(TelemetryExtractor):
    format = TelemetryFormat.NETWORK_SUMMARY

    def extract(self, report: Any) -> BandwidthSnapshot:
        if not isinstance(report, Mapping):
            raise UnsupportedTelemetryError(
                f"Expected a network summary mapping, got {type(report).__name__}"
            )
        stats = report.get("stats")
        latest = stats.get("latest") if isinstance(stats, Mapping) else None
        if not isinstance(latest, Mapping):
            raise UnsupportedTelemetryError("Network summary has no stats.latest section")

        rtt = _number(latest.get("networkRoundTripTime"))
        lost = _number(latest.get("totalSendPacketsLost"))
        send_bitrate = _number(latest.get("videoSendBitsPerSecond"))
        if send_bitrate is None:
            send_bitrate = _number(latest.get("sendBitsPerSecond"))
        return BandwidthSnapshot(
            timestamp=_number(latest.get("timestamp")),
            bandwidth_bps=_number(latest.get("availableOutgoingBitrate")),
            rtt_ms=rtt * 1000 if rtt is not None else None,
            packets_lost=int(lost) if lost is not None else None,
            send_bitrate_bps=send_bitrate,
        )


class UnsupportedExtractor(TelemetryExtractor):
    format = TelemetryFormat.UNRECOGNIZED

    def extract(self, report: Any) -> BandwidthSnapshot:
        raise UnsupportedTelemetryError(
            "Only standard stats and network summary telemetry are supported"
        )


_EXTRACTORS: dict[TelemetryFormat, type[TelemetryExtractor]] = {
    TelemetryFormat.STANDARD_STATS: StandardStatsExtractor,
    TelemetryFormat.NETWORK_SUMMARY: NetworkSummaryExtractor,
    TelemetryFormat.UNRECOGNIZED: UnsupportedExtractor,
}


def select_extractor(telemetry_format: TelemetryFormat | str | None) -> TelemetryExtractor:
    """Pick the extractor for a session's declared telemetry format."""
    try:
        key = TelemetryFormat(telemetry_format)
    except ValueError:
        key = TelemetryFormat.UNRECOGNIZED
    return _EXTRACTORS[key]()
