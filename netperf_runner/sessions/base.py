"""
Transport session interface consumed by the network tests.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import Enum
from typing import Any, Protocol

from pydantic import BaseModel, Field

from ..telemetry import TelemetryFormat

MessageHandler = Callable[[bytes], None]


class BackpressureError(Exception):
    """Raised by ``send`` when the channel refuses more data."""


class SessionError(Exception):
    """Raised when a session cannot be established or used."""


class IcePolicy(str, Enum):
    """Which ICE candidates a session may use."""

    ALL = "all"
    NOT_HOST = "not-host"
    RELAY = "relay"


class ChannelOptions(BaseModel):
    """Data channel reliability settings."""

    ordered: bool = True
    max_retransmits: int | None = Field(default=None, ge=0)

    @property
    def reliable(self) -> bool:
        return self.ordered and self.max_retransmits is None


class MediaConstraints(BaseModel):
    """Requested capture format for a video track."""

    width: int = Field(default=1280, ge=1)
    height: int = Field(default=720, ge=1)
    max_bitrate_kbps: int | None = None


class MediaTrack(Protocol):
    """A published capture track."""

    async def stop(self) -> None: ...


class TransportSession(ABC):
    """
    A loopback transport session: one sending endpoint and one receiving endpoint.

    A session is owned by exactly one test run and closed exactly once.
    """

    telemetry_format: TelemetryFormat = TelemetryFormat.UNRECOGNIZED

    def __init__(self, ice_policy: IcePolicy = IcePolicy.ALL) -> None:
        self.ice_policy = ice_policy
        self._message_handler: MessageHandler | None = None

    def set_message_handler(self, handler: MessageHandler | None) -> None:
        """Register the callback invoked for every payload the receiving side gets."""
        self._message_handler = handler

    def dispatch_message(self, payload: bytes) -> None:
        """Deliver an inbound payload to the registered handler."""
        if self._message_handler is not None:
            self._message_handler(payload)

    @abstractmethod
    async def establish(self, channel: ChannelOptions | None = None) -> None:
        """Connect both endpoints; returns once the data channel is open."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Tear the session down."""
        pass

    @abstractmethod
    def send(self, payload: bytes) -> None:
        """Enqueue a payload on the sending endpoint. May raise BackpressureError."""
        pass

    @property
    @abstractmethod
    def buffered_amount(self) -> int:
        """Bytes enqueued on the sending endpoint but not yet sent."""
        pass

    @abstractmethod
    async def get_stats(self) -> Any:
        """Fetch a telemetry snapshot in this session's ``telemetry_format``."""
        pass

    @abstractmethod
    async def acquire_media(self, constraints: MediaConstraints) -> MediaTrack:
        """Publish a capture track from the sending endpoint."""
        pass


class SessionFactory(Protocol):
    """Creates a fresh, unestablished session for one test run."""

    def __call__(self, ice_policy: IcePolicy) -> TransportSession: ...
