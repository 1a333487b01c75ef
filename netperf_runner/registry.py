"""
Catalog of the network tests this runner knows how to run.

The registry is an explicit object built at process start by
``build_default_registry``; nothing registers itself on import.
"""

from collections.abc import Callable

from loguru import logger
from pydantic import BaseModel, ConfigDict
from shared.settings import NetperfRunnerSettings
from shared.types import BandwidthConfig, LatencyConfig, TestResult, ThroughputConfig

from .reporter import TestReporter
from .runners.bandwidth import BandwidthSampler
from .runners.base import BaseNetworkTest
from .runners.latency import LatencyProbe
from .runners.throughput import ThroughputPacer
from .sessions.base import IcePolicy, SessionFactory, TransportSession

THROUGHPUT_SUITE = "throughput"

TestFactory = Callable[
    [TransportSession, TestReporter, NetperfRunnerSettings], BaseNetworkTest
]


class TestCase(BaseModel):
    """A runnable, named test."""

    __test__ = False

    model_config = ConfigDict(arbitrary_types_allowed=True)

    suite: str
    name: str
    description: str
    ice_policy: IcePolicy = IcePolicy.ALL
    explicit: bool = False
    factory: TestFactory

    def create(
        self, session_factory: SessionFactory, settings: NetperfRunnerSettings
    ) -> BaseNetworkTest:
        """Build a fresh test instance with its own session and reporter."""
        session = session_factory(self.ice_policy)
        test = self.factory(session, TestReporter(self.name), settings)
        test.name = self.name
        return test


class TestRegistry:
    """Named test cases grouped by suite."""

    __test__ = False

    def __init__(self) -> None:
        self._cases: dict[str, TestCase] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._cases

    def __len__(self) -> int:
        return len(self._cases)

    def register(self, case: TestCase) -> TestCase:
        if case.name in self._cases:
            raise ValueError(f"Test {case.name!r} is already registered")
        self._cases[case.name] = case
        return case

    def get(self, name: str) -> TestCase:
        try:
            return self._cases[name]
        except KeyError:
            known = ", ".join(sorted(self._cases))
            raise KeyError(f"Unknown test {name!r} (known: {known})") from None

    def cases(self, suite: str | None = None, include_explicit: bool = True) -> list[TestCase]:
        """List test cases, optionally filtered by suite; explicit cases only on request."""
        return [
            case
            for case in self._cases.values()
            if (suite is None or case.suite == suite) and (include_explicit or not case.explicit)
        ]

    async def run(
        self,
        name: str,
        session_factory: SessionFactory,
        settings: NetperfRunnerSettings,
    ) -> TestResult | None:
        """Run one test to completion."""
        case = self.get(name)
        test = case.create(session_factory, settings)
        logger.debug(f"Running {case.suite}/{case.name} with ICE policy {case.ice_policy.value}")
        return await test.run()


def throughput_config(settings: NetperfRunnerSettings) -> ThroughputConfig:
    return ThroughputConfig(
        duration_ms=settings.throughput.throughput_duration_ms,
        packet_size=settings.throughput.throughput_packet_size,
        max_packets_per_tick=settings.throughput.throughput_max_packets_per_tick,
    )


def bandwidth_config(settings: NetperfRunnerSettings) -> BandwidthConfig:
    return BandwidthConfig(
        duration_ms=settings.bandwidth.bandwidth_duration_ms,
        poll_interval_ms=settings.bandwidth.bandwidth_poll_interval_ms,
        max_video_bitrate_kbps=settings.bandwidth.bandwidth_max_video_bitrate_kbps,
    )


def latency_config(settings: NetperfRunnerSettings) -> LatencyConfig:
    return LatencyConfig(
        duration_ms=settings.latency.latency_duration_ms,
        interval_ms=settings.latency.latency_interval_ms,
    )


def build_default_registry() -> TestRegistry:
    """Create the registry of built-in tests."""
    registry = TestRegistry()
    registry.register(
        TestCase(
            suite=THROUGHPUT_SUITE,
            name="data-throughput",
            description="Saturate a relayed data channel and measure sustained bitrate",
            ice_policy=IcePolicy.RELAY,
            factory=lambda session, reporter, settings: ThroughputPacer(
                session, reporter, throughput_config(settings)
            ),
        )
    )
    registry.register(
        TestCase(
            suite=THROUGHPUT_SUITE,
            name="video-bandwidth",
            description="Measure bandwidth estimate ramp-up and RTT of a relayed video call",
            ice_policy=IcePolicy.RELAY,
            factory=lambda session, reporter, settings: BandwidthSampler(
                session, reporter, bandwidth_config(settings)
            ),
        )
    )
    registry.register(
        TestCase(
            suite=THROUGHPUT_SUITE,
            name="network-latency",
            description="Periodic one-way delay over non-host candidates",
            ice_policy=IcePolicy.NOT_HOST,
            explicit=True,
            factory=lambda session, reporter, settings: LatencyProbe(
                session, reporter, latency_config(settings)
            ),
        )
    )
    registry.register(
        TestCase(
            suite=THROUGHPUT_SUITE,
            name="network-latency-relay",
            description="Periodic one-way delay over relay candidates",
            ice_policy=IcePolicy.RELAY,
            explicit=True,
            factory=lambda session, reporter, settings: LatencyProbe(
                session, reporter, latency_config(settings)
            ),
        )
    )
    return registry
