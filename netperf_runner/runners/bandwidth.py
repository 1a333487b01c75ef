"""
Video bandwidth estimation test.

Publishes a capture track over the session for a fixed duration, polls the
transport's telemetry at a fixed period and computes bandwidth-estimate and
RTT average/maximum plus the time the estimate takes to ramp up to a fraction
of the configured video bitrate ceiling. Reports infinite ramp-up time if the
estimate never gets there.
"""

import math
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict
from shared.types import BandwidthConfig, BandwidthResult
from shared.utils import Clock, monotonic_ms

from ..aggregate import RunningAggregate
from ..reporter import TestReporter
from ..scheduler import TickOutcome, run_periodic
from ..sessions.base import MediaConstraints, MediaTrack, TransportSession
from ..telemetry import (
    BandwidthSnapshot,
    TelemetryExtractor,
    TelemetryFormat,
    UnsupportedTelemetryError,
    select_extractor,
)
from .base import BaseNetworkTest


class BandwidthRun(BaseModel):
    """Per-run polling context."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    start_time: float
    extractor: TelemetryExtractor
    track: Any
    bandwidth: RunningAggregate
    rtt: RunningAggregate
    send_bitrate: RunningAggregate
    frame_width: int | None = None
    frame_height: int | None = None
    packets_lost: int | None = None
    polls: int = 0
    poll_errors: int = 0


def format_ramp_up(ramp_up_ms: float) -> str:
    return "infinite" if math.isinf(ramp_up_ms) else f"{ramp_up_ms:g}"


def format_bps(value: float | None) -> str:
    return "n/a" if value is None else f"{value:.0f}"


class BandwidthSampler(BaseNetworkTest[BandwidthResult]):
    """Samples bandwidth estimate and RTT telemetry into running aggregates."""

    name = "video-bandwidth"

    def __init__(
        self,
        session: TransportSession,
        reporter: TestReporter,
        config: BandwidthConfig | None = None,
        clock: Clock = monotonic_ms,
    ) -> None:
        super().__init__(session, reporter, clock)
        self.config = config or BandwidthConfig()
        self.run_state: BandwidthRun | None = None

    def start(self, track: MediaTrack) -> BandwidthRun:
        """Create the run context once media is flowing."""
        extractor = select_extractor(self.session.telemetry_format)
        if extractor.format is TelemetryFormat.UNRECOGNIZED:
            logger.warning(
                f"Session declares unknown telemetry format {self.session.telemetry_format}"
            )
        self.run_state = BandwidthRun(
            start_time=self.clock(),
            extractor=extractor,
            track=track,
            bandwidth=RunningAggregate(self.config.ramp_up_threshold_bps),
            rtt=RunningAggregate(),
            send_bitrate=RunningAggregate(),
        )
        return self.run_state

    def _require_run(self, action: str) -> BandwidthRun:
        if self.run_state is None:
            raise RuntimeError(f"Must call start() before {action}")
        return self.run_state

    def fold(self, snapshot: BandwidthSnapshot) -> None:
        """Fold one telemetry snapshot into the run's aggregates and last-values."""
        run = self._require_run("folding snapshots")

        # Aggregates only take telemetry timestamps, so ramp-up stays in one clock domain.
        if snapshot.timestamp is None:
            logger.debug("Telemetry snapshot has no timestamp; not adding it to time series")
        else:
            if snapshot.bandwidth_bps is not None:
                run.bandwidth.add(snapshot.timestamp, snapshot.bandwidth_bps)
            if snapshot.rtt_ms is not None:
                run.rtt.add(snapshot.timestamp, snapshot.rtt_ms)
            if snapshot.send_bitrate_bps is not None:
                run.send_bitrate.add(snapshot.timestamp, snapshot.send_bitrate_bps)

        if snapshot.frame_width is not None and snapshot.frame_height is not None:
            run.frame_width = snapshot.frame_width
            run.frame_height = snapshot.frame_height
        if snapshot.packets_lost is not None:
            run.packets_lost = snapshot.packets_lost

    async def gather_stats(self) -> TickOutcome:
        """Poll telemetry once; a failed poll is reported and the loop carries on."""
        run = self._require_run("polling")
        now = self.clock()
        elapsed = now - run.start_time
        if elapsed > self.config.duration_ms:
            self.reporter.set_progress(100)
            return TickOutcome.TERMINAL

        self.reporter.set_progress(elapsed * 100 / self.config.duration_ms)
        run.polls += 1
        try:
            report = await self.session.get_stats()
            self.fold(run.extractor.extract(report))
        except UnsupportedTelemetryError as e:
            run.poll_errors += 1
            self.reporter.report_error(f"Unsupported telemetry: {e}")
        except Exception as e:
            run.poll_errors += 1
            self.reporter.report_error(f"Failed to get stats: {e}")
        return TickOutcome.RESCHEDULE

    def reports_resolution(self) -> bool:
        run = self._require_run("checking the camera")
        return run.frame_width is not None or run.extractor.format is TelemetryFormat.STANDARD_STATS

    def camera_failed(self) -> bool:
        """
        Decide whether the capture was degenerate.

        With a reported resolution, both dimensions below the minimum is a
        failure. Standard stats always carry the resolution, so its absence
        there is a failure too. Other transports fall back to the video send
        bitrate: no media is flowing if its mean is missing or zero.
        """
        run = self._require_run("checking the camera")
        if run.frame_width is not None and run.frame_height is not None:
            return (
                run.frame_width < self.config.min_width
                and run.frame_height < self.config.min_height
            )
        if run.extractor.format is TelemetryFormat.STANDARD_STATS:
            return True
        send_mean = run.send_bitrate.get_average()
        return send_mean is None or send_mean <= 0

    def _report_bandwidth(self, run: BandwidthRun, ramp_up_ms: float) -> None:
        self.reporter.report_info(
            f"Send bandwidth estimate average: {run.bandwidth.get_average()} bps"
        )
        self.reporter.report_info(f"Send bandwidth estimate max: {run.bandwidth.get_max()} bps")
        self.reporter.report_info(f"Send bandwidth ramp-up time: {format_ramp_up(ramp_up_ms)} ms")

    async def completed(self) -> BandwidthResult:
        """Stop capture, tear down the session and report the summary."""
        run = self._require_run("completing the test")
        try:
            await run.track.stop()
        except Exception as e:
            logger.warning(f"Failed to stop capture track: {e}")
        await self.close_session()

        ramp_up_ms = run.bandwidth.get_ramp_up_time()
        send_mean = run.send_bitrate.get_average()
        send_std_dev = run.send_bitrate.get_std_dev()
        if self.reports_resolution():
            resolution = f"{run.frame_width}x{run.frame_height}"
            if self.camera_failed():
                self.reporter.report_error(
                    f"Camera failure: {resolution}. Cannot test bandwidth without a working camera."
                )
            else:
                self.reporter.report_success(f"Video resolution: {resolution}")
                self._report_bandwidth(run, ramp_up_ms)
        else:
            if self.camera_failed():
                self.reporter.report_error(
                    f"Send bitrate mean is {format_bps(send_mean)}, "
                    "cannot test bandwidth without a working camera."
                )
            else:
                self.reporter.report_success(f"Send bitrate mean: {format_bps(send_mean)} bps")
                self._report_bandwidth(run, ramp_up_ms)
            self.reporter.report_info(
                f"Send bitrate standard deviation: {format_bps(send_std_dev)} bps"
            )
        self.reporter.report_info(f"RTT average: {run.rtt.get_average()} ms")
        self.reporter.report_info(f"RTT max: {run.rtt.get_max()} ms")
        self.reporter.report_info(f"Lost packets: {run.packets_lost}")

        logger.debug(
            f"Bandwidth run: {run.polls} polls, {run.poll_errors} failed, "
            f"{run.bandwidth.count} bandwidth samples, {run.rtt.count} RTT samples, "
            f"{run.send_bitrate.count} send bitrate samples"
        )
        result = BandwidthResult(
            test_name=self.name,
            passed=not self.reporter.has_errors,
            frame_width=run.frame_width,
            frame_height=run.frame_height,
            bandwidth_average_bps=run.bandwidth.get_average(),
            bandwidth_max_bps=run.bandwidth.get_max(),
            ramp_up_time_ms=ramp_up_ms,
            rtt_average_ms=run.rtt.get_average(),
            rtt_max_ms=run.rtt.get_max(),
            packets_lost=run.packets_lost,
            send_bitrate_average_bps=send_mean,
            send_bitrate_std_dev_bps=send_std_dev,
            poll_errors=run.poll_errors,
            entries=list(self.reporter.entries),
        )
        self.run_state = None
        return result

    async def measure(self) -> BandwidthResult:
        constraints = MediaConstraints(
            width=self.config.capture_width,
            height=self.config.capture_height,
            max_bitrate_kbps=self.config.max_video_bitrate_kbps,
        )
        try:
            track = await self.session.acquire_media(constraints)
        except Exception as e:
            self.reporter.report_fatal(f"Failed to acquire camera: {e}")
            return BandwidthResult(
                test_name=self.name, passed=False, entries=list(self.reporter.entries)
            )

        self.start(track)
        await run_periodic(self.gather_stats, self.config.poll_interval_ms)
        return await self.completed()
