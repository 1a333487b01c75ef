"""
Daily loopback session.

Two call clients join the same Daily room. The sender publishes app messages
and an optional virtual camera; the receiver forwards app messages to the
session's message handler. Telemetry is Daily's network stats summary.

Daily invokes event handlers on its own threads, so inbound messages are
handed back to the asyncio loop before they reach the measurement code.
"""

import asyncio
from typing import Any

from daily import CallClient, Daily, EventHandler
from loguru import logger

from ..telemetry import TelemetryFormat
from .base import (
    BackpressureError,
    ChannelOptions,
    IcePolicy,
    MediaConstraints,
    SessionError,
    TransportSession,
)


class DailyReceiver(EventHandler):
    """Event handler for the receiving call client."""

    def __new__(cls, *args: Any, **kwargs: Any) -> "DailyReceiver":  # noqa: ANN401
        """Create a new instance, filtering out kwargs that EventHandler doesn't accept."""
        return super().__new__(cls)

    def __init__(self, session: "DailySession", loop: asyncio.AbstractEventLoop) -> None:
        EventHandler.__init__(self)
        self.session = session
        self.loop = loop

    def on_app_message(self, message: object, sender: str) -> None:
        """Handle incoming app-message event."""
        if isinstance(message, str):
            payload = message.encode("utf-8")
        elif isinstance(message, dict) and isinstance(message.get("data"), str):
            payload = message["data"].encode("utf-8")
        else:
            logger.warning(f"Ignoring unexpected app message from {sender}: {message!r}")
            return
        self.loop.call_soon_threadsafe(self.session.dispatch_message, payload)

    def on_error(self, error: Exception) -> None:
        """Called when an error occurs."""
        logger.error(f"Daily receiver error: {error}")


class DailyVideoTrack:
    """Virtual camera fed with synthetic frames by the sending call client."""

    def __init__(self, client: CallClient, device_name: str, width: int, height: int) -> None:
        self.client = client
        self.device_name = device_name
        self.width = width
        self.height = height
        self.camera = Daily.create_camera_device(
            device_name, width=width, height=height, color_format="RGBA"
        )
        self._task = asyncio.create_task(self._capture_loop())

    async def _capture_loop(self, fps: float = 30.0) -> None:
        frame = bytearray(self.width * self.height * 4)
        stripes = len(range(0, len(frame), 97))
        frame_number = 0
        while True:
            frame[::97] = bytes([frame_number % 256]) * stripes
            self.camera.write_frame(bytes(frame))
            frame_number += 1
            await asyncio.sleep(1 / fps)

    async def stop(self) -> None:
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self.client.update_inputs({"camera": False})
        logger.debug("📷 Virtual camera stopped")


class DailySession(TransportSession):
    """Loopback session between two call clients in one Daily room."""

    telemetry_format = TelemetryFormat.NETWORK_SUMMARY

    def __init__(
        self,
        room_url: str,
        ice_policy: IcePolicy = IcePolicy.ALL,
        join_timeout: float = 10.0,
        max_buffered_bytes: int = 1024 * 1024,
    ) -> None:
        super().__init__(ice_policy)
        self.room_url = room_url
        self.join_timeout = join_timeout
        self.max_buffered_bytes = max_buffered_bytes

        self.sender: CallClient | None = None
        self.receiver: CallClient | None = None
        self._receiver_handler: DailyReceiver | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._in_flight = 0

    async def _join(self, client: CallClient, user_name: str) -> None:
        if self._loop is None:
            raise RuntimeError("Must call establish() before joining")
        joined: asyncio.Future[None] = self._loop.create_future()

        def on_joined(data: dict[str, Any] | None, error: str | None) -> None:
            if joined.done():
                return
            if error:
                joined.set_exception(SessionError(f"Failed to join Daily room: {error}"))
            else:
                joined.set_result(None)

        client.set_user_name(user_name)
        client.join(
            self.room_url,
            completion=lambda data, error: self._loop.call_soon_threadsafe(on_joined, data, error),
        )
        try:
            await asyncio.wait_for(joined, timeout=self.join_timeout)
        except TimeoutError as e:
            raise SessionError(
                f"Failed to join Daily room within {self.join_timeout} seconds"
            ) from e

    async def establish(self, channel: ChannelOptions | None = None) -> None:
        """Join the receiver, then the sender."""
        Daily.init()
        self._loop = asyncio.get_running_loop()
        if self.ice_policy is not IcePolicy.ALL:
            logger.warning(f"Daily does not expose ICE filtering; ignoring {self.ice_policy.value}")
        if channel is not None and not channel.reliable:
            logger.debug("Daily app messages are always reliable; ignoring channel options")

        logger.info("📞 Joining Daily room with loopback clients...")
        self._receiver_handler = DailyReceiver(self, self._loop)
        self.receiver = CallClient(event_handler=self._receiver_handler)
        self.receiver.update_subscription_profiles(
            {"base": {"camera": "unsubscribed", "microphone": "unsubscribed"}}
        )
        await self._join(self.receiver, "netperf-receiver")

        self.sender = CallClient()
        self.sender.update_subscription_profiles(
            {"base": {"camera": "unsubscribed", "microphone": "unsubscribed"}}
        )
        await self._join(self.sender, "netperf-sender")

        logger.info("✅ Daily loopback established")

    async def close(self) -> None:
        for client in (self.sender, self.receiver):
            if client:
                client.leave()
                client.release()
        self.sender = None
        self.receiver = None
        logger.info("👋 Disconnected from Daily room")

    @property
    def buffered_amount(self) -> int:
        return self._in_flight

    def send(self, payload: bytes) -> None:
        if not self.sender or not self._loop:
            raise SessionError("Must call establish() before sending messages")
        if self._in_flight + len(payload) > self.max_buffered_bytes:
            raise BackpressureError(f"{self._in_flight} bytes already buffered")

        size = len(payload)
        self._in_flight += size

        def on_sent(error: str | None) -> None:
            self._in_flight -= size
            if error:
                logger.error(f"Failed to send app message: {error}")

        loop = self._loop
        self.sender.send_app_message(
            payload.decode("utf-8"),
            completion=lambda error: loop.call_soon_threadsafe(on_sent, error),
        )

    async def get_stats(self) -> dict[str, Any]:
        if not self.sender:
            raise SessionError("Must call establish() before reading stats")
        return self.sender.get_network_stats()

    async def acquire_media(self, constraints: MediaConstraints) -> DailyVideoTrack:
        if not self.sender:
            raise SessionError("Must call establish() before publishing media")

        track = DailyVideoTrack(self.sender, "netperf-camera", constraints.width, constraints.height)
        self.sender.update_inputs(
            {"camera": {"isEnabled": True, "settings": {"deviceId": track.device_name}}}
        )
        publishing: dict[str, Any] = {"camera": {"isPublishing": True}}
        if constraints.max_bitrate_kbps:
            publishing["camera"]["sendSettings"] = {
                "maxQuality": "high",
                "encodings": {"high": {"maxBitrate": constraints.max_bitrate_kbps * 1000}},
            }
        self.sender.update_publishing(publishing)
        logger.info(f"📷 Publishing virtual camera at {constraints.width}x{constraints.height}")
        return track
