"""
Data channel saturation test.

Keeps a reliable data channel as full as its send buffer allows for a fixed
duration, tallies what arrives on the other end, and finishes only once every
byte that was sent has been received.
"""

import asyncio

from loguru import logger
from pydantic import BaseModel, Field
from shared.types import ThroughputConfig, ThroughputResult
from shared.utils import Clock, monotonic_ms

from ..reporter import TestReporter
from ..scheduler import TickOutcome, run_periodic
from ..sessions.base import BackpressureError, TransportSession
from .base import BaseNetworkTest


class ThroughputState(BaseModel):
    """Per-run send/receive bookkeeping."""

    buffer_limit: int
    start_time: float
    sent_payload_bytes: int = 0
    received_payload_bytes: int = 0
    stop_sending: bool = False
    last_bitrate_time: float
    last_received_bytes: int = 0
    bitrate_samples_kbps: list[float] = Field(default_factory=list)
    end_time: float | None = None
    send_failed: bool = False

    @property
    def drained(self) -> bool:
        return self.stop_sending and self.sent_payload_bytes == self.received_payload_bytes


class ThroughputPacer(BaseNetworkTest[ThroughputResult]):
    """Saturates a data channel and measures sustained bitrate."""

    name = "data-throughput"

    def __init__(
        self,
        session: TransportSession,
        reporter: TestReporter,
        config: ThroughputConfig | None = None,
        clock: Clock = monotonic_ms,
    ) -> None:
        super().__init__(session, reporter, clock)
        self.config = config or ThroughputConfig()
        self.payload = b"h" * self.config.packet_size
        self.state: ThroughputState | None = None
        self._drained = asyncio.Event()

    def start(self) -> ThroughputState:
        """Create the run context; called when the channel opens."""
        now = self.clock()
        self.state = ThroughputState(
            buffer_limit=self.config.buffer_limit or self.config.packet_size,
            start_time=now,
            last_bitrate_time=now,
        )
        self._drained.clear()
        self.session.set_message_handler(self.on_message)
        return self.state

    async def sending_step(self) -> TickOutcome:
        """Enqueue up to one tick's worth of payloads, then decide whether to continue."""
        state = self.state
        if state is None:
            raise RuntimeError("Must call start() before sending")
        now = self.clock()

        for _ in range(self.config.max_packets_per_tick):
            if self.session.buffered_amount >= state.buffer_limit:
                break
            try:
                self.session.send(self.payload)
            except BackpressureError as e:
                logger.debug(f"Send refused: {e}")
                break
            except Exception as e:
                self.reporter.report_error(f"Failed to send: {e}")
                state.send_failed = True
                state.stop_sending = True
                if state.drained:
                    self._finish(now)
                return TickOutcome.TERMINAL
            state.sent_payload_bytes += len(self.payload)

        elapsed = now - state.start_time
        if elapsed >= self.config.duration_ms:
            self.reporter.set_progress(100)
            state.stop_sending = True
            logger.debug(f"Stopped sending after {state.sent_payload_bytes} bytes")
            if state.drained:
                self._finish(now)
            return TickOutcome.TERMINAL

        self.reporter.set_progress(elapsed * 100 / self.config.duration_ms)
        return TickOutcome.RESCHEDULE

    def on_message(self, payload: bytes) -> None:
        """Count received bytes and report bitrate about once per interval."""
        state = self.state
        if state is None or state.end_time is not None:
            return

        state.received_payload_bytes += len(payload)
        now = self.clock()
        interval = now - state.last_bitrate_time
        if interval >= self.config.bitrate_interval_ms:
            delta = state.received_payload_bytes - state.last_received_bytes
            bitrate_kbps = round(delta * 8 / interval, 3)
            state.bitrate_samples_kbps.append(bitrate_kbps)
            self.reporter.report_success(f"Transmitting at {bitrate_kbps} kbps.")
            state.last_received_bytes = state.received_payload_bytes
            state.last_bitrate_time = now

        if state.drained:
            self._finish(now)

    def _finish(self, now: float) -> None:
        state = self.state
        if state is None or state.end_time is not None:
            return
        state.end_time = now
        self._drained.set()

    async def wait_drained(self) -> bool:
        """Wait for the receiver to catch up with the sender."""
        try:
            await asyncio.wait_for(self._drained.wait(), self.config.drain_timeout_ms / 1000)
        except TimeoutError:
            return False
        return True

    async def measure(self) -> ThroughputResult:
        state = self.start()
        await run_periodic(self.sending_step, self.config.tick_interval_ms)
        drained = state.drained if state.send_failed else await self.wait_drained()

        self.session.set_message_handler(None)
        await self.close_session()

        end_time = state.end_time if state.end_time is not None else self.clock()
        elapsed_seconds = round((end_time - state.start_time) / 1000, 4)
        received_kbits = state.received_payload_bytes * 8 / 1000
        if state.send_failed:
            logger.warning(
                f"Sending stopped early; {state.received_payload_bytes} of "
                f"{state.sent_payload_bytes} bytes received"
            )
        elif drained:
            self.reporter.report_success(
                f"Total transmitted: {received_kbits} kilo-bits in {elapsed_seconds} seconds."
            )
        else:
            self.reporter.report_error(
                f"Receiver drained only {state.received_payload_bytes} of "
                f"{state.sent_payload_bytes} bytes within {self.config.drain_timeout_ms:.0f} ms."
            )

        result = ThroughputResult(
            test_name=self.name,
            passed=drained and not self.reporter.has_errors,
            sent_bytes=state.sent_payload_bytes,
            received_bytes=state.received_payload_bytes,
            elapsed_seconds=elapsed_seconds,
            received_kbits=received_kbits,
            bitrate_samples_kbps=state.bitrate_samples_kbps,
            entries=list(self.reporter.entries),
        )
        self.state = None
        return result
