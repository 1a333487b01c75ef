"""
LiveKit loopback session.

Two participants join the same LiveKit room: a sender that publishes data and
media, and a receiver that listens on the data topic. Telemetry comes from the
sender's publisher peer connection in standard stats form.
"""

import asyncio
import uuid
from datetime import timedelta
from typing import Any

from livekit import api as livekit_api
from livekit import rtc
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

_ICE_TRANSPORT = {
    IcePolicy.ALL: rtc.IceTransportType.TRANSPORT_ALL,
    IcePolicy.NOT_HOST: rtc.IceTransportType.TRANSPORT_NOHOST,
    IcePolicy.RELAY: rtc.IceTransportType.TRANSPORT_RELAY,
}


def _stat_to_report(stat: Any) -> dict[str, Any] | None:
    """Flatten one LiveKit RtcStats proto into a W3C-style stats mapping."""
    kind = stat.WhichOneof("stats")
    if kind == "candidate_pair":
        pair = stat.candidate_pair
        return {
            "type": "candidate-pair",
            "timestamp": pair.rtc.timestamp,
            "state": "succeeded" if pair.candidate_pair.nominated else "in-progress",
            "availableOutgoingBitrate": pair.candidate_pair.available_outgoing_bitrate,
            "currentRoundTripTime": pair.candidate_pair.current_round_trip_time,
        }
    if kind == "outbound_rtp":
        outbound = stat.outbound_rtp
        return {
            "type": "outbound-rtp",
            "timestamp": outbound.rtc.timestamp,
            "kind": outbound.stream.kind,
            "frameWidth": outbound.outbound.frame_width,
            "frameHeight": outbound.outbound.frame_height,
        }
    if kind == "remote_inbound_rtp":
        remote = stat.remote_inbound_rtp
        return {
            "type": "remote-inbound-rtp",
            "timestamp": remote.rtc.timestamp,
            "kind": remote.stream.kind,
            "packetsLost": remote.received.packets_lost,
            "roundTripTime": remote.remote_inbound.round_trip_time,
        }
    return None


class LiveKitVideoTrack:
    """Synthetic camera track published by the sending participant."""

    def __init__(
        self,
        participant: rtc.LocalParticipant,
        source: rtc.VideoSource,
        publication: rtc.LocalTrackPublication,
        width: int,
        height: int,
        fps: float = 30.0,
    ) -> None:
        self.participant = participant
        self.source = source
        self.publication = publication
        self.width = width
        self.height = height
        self.fps = fps
        self._task = asyncio.create_task(self._capture_loop())

    async def _capture_loop(self) -> None:
        buffer = bytearray(self.width * self.height * 4)
        stripes = len(range(0, len(buffer), 97))
        frame_number = 0
        while True:
            # Vary the content so the encoder has something to spend bits on.
            buffer[::97] = bytes([frame_number % 256]) * stripes
            frame = rtc.VideoFrame(self.width, self.height, rtc.VideoBufferType.RGBA, buffer)
            self.source.capture_frame(frame)
            frame_number += 1
            await asyncio.sleep(1 / self.fps)

    async def stop(self) -> None:
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        await self.participant.unpublish_track(self.publication.sid)
        await self.source.aclose()
        logger.debug("📷 Synthetic camera stopped")


class LiveKitSession(TransportSession):
    """Loopback session between two participants of one LiveKit room."""

    telemetry_format = TelemetryFormat.STANDARD_STATS

    def __init__(
        self,
        server_url: str,
        api_key: str,
        api_secret: str,
        ice_policy: IcePolicy = IcePolicy.ALL,
        room_prefix: str = "netperf",
        connect_timeout: float = 10.0,
        max_buffered_bytes: int = 16 * 1024 * 1024,
    ) -> None:
        super().__init__(ice_policy)
        self.server_url = server_url
        self.api_key = api_key
        self.api_secret = api_secret
        self.room_name = f"{room_prefix}-{uuid.uuid4().hex[:8]}"
        self.connect_timeout = connect_timeout
        self.max_buffered_bytes = max_buffered_bytes
        self.topic = "netperf"

        self.sender: rtc.Room | None = None
        self.receiver: rtc.Room | None = None
        self._reliable = True
        self._in_flight = 0
        self._publish_tasks: set[asyncio.Task] = set()

    def _create_token(self, identity: str) -> str:
        token = livekit_api.AccessToken(self.api_key, self.api_secret)
        token.with_identity(identity)
        token.with_name(identity)
        token.with_grants(livekit_api.VideoGrants(room_join=True, room=self.room_name))
        token.with_ttl(timedelta(minutes=30))
        return token.to_jwt()

    def _room_options(self) -> rtc.RoomOptions:
        return rtc.RoomOptions(
            auto_subscribe=False,
            rtc_config=rtc.RtcConfiguration(ice_transport_type=_ICE_TRANSPORT[self.ice_policy]),
        )

    async def establish(self, channel: ChannelOptions | None = None) -> None:
        """Connect the receiver, then the sender, and wait until they see each other."""
        channel = channel or ChannelOptions()
        self._reliable = channel.reliable

        logger.info(f"📞 Connecting loopback participants to LiveKit room {self.room_name}...")
        self.sender = rtc.Room()
        self.receiver = rtc.Room()
        peer_connected = asyncio.Event()

        @self.receiver.on("data_received")
        def on_data_received(packet: rtc.DataPacket) -> None:
            if packet.topic == self.topic:
                self.dispatch_message(packet.data)

        @self.sender.on("participant_connected")
        def on_participant_connected(participant: rtc.RemoteParticipant) -> None:
            logger.debug(f"Participant connected: {participant.identity}")
            peer_connected.set()

        options = self._room_options()
        await self.receiver.connect(self.server_url, self._create_token("netperf-receiver"), options)
        await self.sender.connect(self.server_url, self._create_token("netperf-sender"), options)

        if "netperf-receiver" in self.sender.remote_participants:
            peer_connected.set()

        try:
            await asyncio.wait_for(peer_connected.wait(), timeout=self.connect_timeout)
        except TimeoutError as e:
            raise SessionError(
                f"Receiver did not join within {self.connect_timeout} seconds"
            ) from e

        logger.info("✅ LiveKit loopback established")

    async def close(self) -> None:
        for task in list(self._publish_tasks):
            task.cancel()
        if self.sender:
            await self.sender.disconnect()
        if self.receiver:
            await self.receiver.disconnect()
        self.sender = None
        self.receiver = None
        logger.info("👋 Disconnected from LiveKit room")

    @property
    def buffered_amount(self) -> int:
        return self._in_flight

    def send(self, payload: bytes) -> None:
        if not self.sender:
            raise SessionError("Must call establish() before sending messages")
        if self._in_flight + len(payload) > self.max_buffered_bytes:
            raise BackpressureError(f"{self._in_flight} bytes already buffered")

        self._in_flight += len(payload)
        task = asyncio.create_task(self._publish(payload))
        self._publish_tasks.add(task)
        task.add_done_callback(self._publish_tasks.discard)

    async def _publish(self, payload: bytes) -> None:
        try:
            if self.sender:
                await self.sender.local_participant.publish_data(
                    payload, reliable=self._reliable, topic=self.topic
                )
        except Exception as e:
            logger.error(f"Failed to publish data: {e}")
        finally:
            self._in_flight -= len(payload)

    async def get_stats(self) -> list[dict[str, Any]]:
        if not self.sender:
            raise SessionError("Must call establish() before reading stats")
        stats = await self.sender.get_rtc_stats()
        reports = (_stat_to_report(stat) for stat in stats.publisher_stats)
        return [report for report in reports if report is not None]

    async def acquire_media(self, constraints: MediaConstraints) -> LiveKitVideoTrack:
        if not self.sender:
            raise SessionError("Must call establish() before publishing media")

        source = rtc.VideoSource(constraints.width, constraints.height)
        track = rtc.LocalVideoTrack.create_video_track("netperf-camera", source)
        options = rtc.TrackPublishOptions(source=rtc.TrackSource.SOURCE_CAMERA)
        if constraints.max_bitrate_kbps:
            options.video_encoding.max_bitrate = constraints.max_bitrate_kbps * 1000
            options.video_encoding.max_framerate = 30
        publication = await self.sender.local_participant.publish_track(track, options)
        logger.info(f"📷 Publishing synthetic camera at {constraints.width}x{constraints.height}")
        return LiveKitVideoTrack(
            self.sender.local_participant,
            source,
            publication,
            constraints.width,
            constraints.height,
        )
