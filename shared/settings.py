"""
Pydantic Settings for environment configuration.

This module provides type-safe environment variable loading and validation
for the network test runner and its transport sessions.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DailySettings(BaseSettings):
    """Daily platform configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    daily_room_url: str | None = Field(
        default=None, description="Daily room URL used for loopback sessions"
    )


class LiveKitSettings(BaseSettings):
    """LiveKit platform configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    livekit_url: str | None = Field(
        default=None, description="LiveKit server URL (e.g., wss://your-project.livekit.cloud)"
    )
    livekit_api_key: str | None = Field(default=None, description="LiveKit API key")
    livekit_api_secret: str | None = Field(default=None, description="LiveKit API secret")
    livekit_room_prefix: str = Field(
        default="netperf", description="Prefix for generated loopback room names"
    )


class ThroughputSettings(BaseSettings):
    """Data channel throughput test parameters."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    throughput_duration_ms: int = Field(
        default=5000, ge=100, le=600_000, description="Sending duration in milliseconds"
    )
    throughput_packet_size: int = Field(
        default=1024, ge=1, le=65536, description="Payload size in bytes"
    )
    throughput_max_packets_per_tick: int = Field(
        default=1, ge=1, le=1024, description="Packets kept buffered per send tick"
    )


class BandwidthSettings(BaseSettings):
    """Video bandwidth estimation test parameters."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    bandwidth_duration_ms: int = Field(
        default=40_000, ge=1000, le=600_000, description="Polling duration in milliseconds"
    )
    bandwidth_poll_interval_ms: int = Field(
        default=100, ge=10, le=10_000, description="Telemetry poll period in milliseconds"
    )
    bandwidth_max_video_bitrate_kbps: int = Field(
        default=2000, ge=100, le=100_000, description="Expected video bitrate ceiling"
    )


class LatencySettings(BaseSettings):
    """Periodic one-way delay test parameters."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    latency_duration_ms: int = Field(
        default=5 * 60 * 1000, ge=1000, le=3_600_000, description="Probe duration in milliseconds"
    )
    latency_interval_ms: int = Field(
        default=100, ge=10, le=10_000, description="Interval between probes in milliseconds"
    )


class NetperfRunnerSettings(BaseSettings):
    """Network test runner configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    platform: str = Field(default="livekit", description="Transport platform (livekit or daily)")

    # Platform credentials (nested settings)
    daily: DailySettings = Field(default_factory=DailySettings)
    livekit: LiveKitSettings = Field(default_factory=LiveKitSettings)

    # Test parameters
    throughput: ThroughputSettings = Field(default_factory=ThroughputSettings)
    bandwidth: BandwidthSettings = Field(default_factory=BandwidthSettings)
    latency: LatencySettings = Field(default_factory=LatencySettings)

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
