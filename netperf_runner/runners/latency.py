"""
Periodic one-way delay test.

Sends a timestamped probe every interval over an unordered, non-retransmitted
channel for a fixed duration and records receive time minus embedded send time
for every probe that arrives. Flags runs that gathered too few samples (the
process was suspended or probes were lost) and runs whose worst delay is far
above the best one (an unstable network path, e.g. periodic WiFi scans).
"""

import asyncio

from loguru import logger
from pydantic import BaseModel, Field, ValidationError
from shared.types import DelaySample, LatencyConfig, LatencyResult, ProbeMessage
from shared.utils import Clock, wall_clock_ms

from ..reporter import ChartSink, SeriesRecorder, TestReporter
from ..scheduler import TickOutcome, run_periodic
from ..sessions.base import BackpressureError, ChannelOptions, TransportSession
from ..stats import has_enough_samples, is_unstable, summarize_delays
from .base import BaseNetworkTest


class LatencyRun(BaseModel):
    """Per-run probe context."""

    start_time: float
    running: bool = True
    probes_sent: int = 0
    send_errors: int = 0
    samples: list[DelaySample] = Field(default_factory=list)

    @property
    def delays(self) -> list[float]:
        return [sample.delay_ms for sample in self.samples]


class LatencyProbe(BaseNetworkTest[LatencyResult]):
    """Measures one-way delay of periodic probes."""

    name = "network-latency"

    def __init__(
        self,
        session: TransportSession,
        reporter: TestReporter,
        config: LatencyConfig | None = None,
        clock: Clock = wall_clock_ms,
        chart: ChartSink | None = None,
    ) -> None:
        super().__init__(session, reporter, clock)
        self.config = config or LatencyConfig()
        self.chart = chart if chart is not None else SeriesRecorder()
        self.run_state: LatencyRun | None = None

    def channel_options(self) -> ChannelOptions:
        return ChannelOptions(ordered=False, max_retransmits=0)

    def start(self) -> LatencyRun:
        self.run_state = LatencyRun(start_time=self.clock())
        self.session.set_message_handler(self.on_message)
        return self.run_state

    def is_running(self) -> bool:
        return self.run_state is not None and self.run_state.running

    async def send_probe(self) -> TickOutcome:
        """Send one probe stamped with the current time."""
        run = self.run_state
        if run is None or not run.running:
            return TickOutcome.TERMINAL

        probe = ProbeMessage(timestamp=self.clock())
        try:
            self.session.send(probe.model_dump_json().encode("utf-8"))
        except BackpressureError as e:
            logger.debug(f"Probe dropped by sender: {e}")
        except Exception as e:
            run.send_errors += 1
            if run.send_errors == 1:
                self.reporter.report_error(f"Failed to send: {e}")
            else:
                logger.warning(f"Failed to send probe #{run.probes_sent + 1}: {e}")
        else:
            run.probes_sent += 1
        return TickOutcome.RESCHEDULE

    def on_message(self, payload: bytes) -> None:
        """Record the one-way delay of a received probe."""
        run = self.run_state
        if run is None or not run.running:
            return

        try:
            probe = ProbeMessage.model_validate_json(payload)
        except ValidationError as e:
            logger.warning(f"Invalid probe message format: {e}")
            return

        delay = self.clock() - probe.timestamp
        run.samples.append(DelaySample(send_timestamp=probe.timestamp, delay_ms=delay))
        self.chart.add_datapoint(probe.timestamp + delay, delay)
        logger.debug(f"📊 Probe #{len(run.samples)}: delay={delay:.2f}ms")

    async def wait_for_duration(self) -> None:
        """Sleep for the test duration while updating progress."""
        run = self.run_state
        if run is None:
            raise RuntimeError("Must call start() before waiting for the test duration")
        step_ms = min(1000, self.config.interval_ms)

        async def progress_step() -> TickOutcome:
            elapsed = self.clock() - run.start_time
            if elapsed >= self.config.duration_ms:
                self.reporter.set_progress(100)
                return TickOutcome.TERMINAL
            self.reporter.set_progress(elapsed * 100 / self.config.duration_ms)
            return TickOutcome.RESCHEDULE

        await run_periodic(progress_step, step_ms)

    async def finish(self) -> LatencyResult:
        """Stop probing, tear down the session and evaluate the samples."""
        run = self.run_state
        if run is None:
            raise RuntimeError("Must call start() before finishing the test")
        run.running = False
        delays = run.delays
        logger.debug(
            f"periodic-delay trace: delays={delays} "
            f"send_timestamps={[s.send_timestamp for s in run.samples]}"
        )
        self.session.set_message_handler(None)
        await self.close_session()

        summary = summarize_delays(delays)
        self.reporter.report_info(f"Average delay: {summary.average} ms.")
        self.reporter.report_info(f"Min delay: {summary.minimum} ms.")
        self.reporter.report_info(f"Max delay: {summary.maximum} ms.")

        expected = self.config.expected_samples
        enough = has_enough_samples(summary.count, expected, self.config.min_sample_ratio)
        if enough:
            self.reporter.report_success(f"Collected {summary.count} delay samples.")
        else:
            self.reporter.report_error(
                f"Not enough samples gathered ({summary.count} of {expected:.0f} expected). "
                "Keep the runner in the foreground while the test is running."
            )

        stable = True
        if summary.minimum is not None and summary.maximum is not None:
            stable = not is_unstable(
                summary.minimum,
                summary.maximum,
                self.config.stability_offset_ms,
                self.config.stability_factor,
            )
        if not stable:
            self.reporter.report_error(
                "There is a big difference between the min and max delay of packets. "
                "Your network appears unstable."
            )

        result = LatencyResult(
            test_name=self.name,
            passed=not self.reporter.has_errors,
            samples=list(run.samples),
            sample_count=summary.count,
            expected_samples=expected,
            average_delay_ms=summary.average,
            min_delay_ms=summary.minimum,
            max_delay_ms=summary.maximum,
            median_delay_ms=summary.median,
            p95_delay_ms=summary.p95,
            jitter_ms=summary.jitter,
            enough_samples=enough,
            stable=stable,
            entries=list(self.reporter.entries),
        )
        self.run_state = None
        return result

    async def measure(self) -> LatencyResult:
        self.start()
        sender = asyncio.create_task(
            run_periodic(self.send_probe, self.config.interval_ms, running=self.is_running)
        )
        try:
            await self.wait_for_duration()
        finally:
            if self.run_state is not None:
                self.run_state.running = False
        await sender
        return await self.finish()
