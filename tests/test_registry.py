import pytest
from conftest import FakeSession

from netperf_runner.registry import (
    THROUGHPUT_SUITE,
    TestCase,
    TestRegistry,
    build_default_registry,
    latency_config,
    throughput_config,
)
from netperf_runner.runners.bandwidth import BandwidthSampler
from netperf_runner.runners.latency import LatencyProbe
from netperf_runner.runners.throughput import ThroughputPacer
from netperf_runner.sessions.base import IcePolicy
from shared.settings import NetperfRunnerSettings, ThroughputSettings
from shared.types import ThroughputConfig


@pytest.fixture
def settings() -> NetperfRunnerSettings:
    return NetperfRunnerSettings(
        throughput=ThroughputSettings(throughput_duration_ms=100, throughput_packet_size=256)
    )


def test_default_registry_contents():
    registry = build_default_registry()

    assert len(registry) == 4
    assert [c.name for c in registry.cases(THROUGHPUT_SUITE)] == [
        "data-throughput",
        "video-bandwidth",
        "network-latency",
        "network-latency-relay",
    ]
    assert registry.get("data-throughput").ice_policy is IcePolicy.RELAY
    assert registry.get("video-bandwidth").ice_policy is IcePolicy.RELAY
    assert registry.get("network-latency").ice_policy is IcePolicy.NOT_HOST
    assert registry.get("network-latency-relay").ice_policy is IcePolicy.RELAY


def test_latency_cases_run_only_on_request():
    registry = build_default_registry()

    names = [c.name for c in registry.cases(include_explicit=False)]

    assert names == ["data-throughput", "video-bandwidth"]
    assert "network-latency" in registry


def test_unknown_suite_is_empty():
    assert build_default_registry().cases("audio") == []


def test_duplicate_name_is_rejected():
    registry = build_default_registry()
    case = registry.get("data-throughput")

    with pytest.raises(ValueError):
        registry.register(case)


def test_unknown_name_raises():
    with pytest.raises(KeyError, match="no-such-test"):
        build_default_registry().get("no-such-test")


def test_settings_feed_test_configs(settings):
    config = throughput_config(settings)

    assert config.duration_ms == 100
    assert config.packet_size == 256
    assert config.buffer_limit == 256
    assert latency_config(settings).interval_ms == 100


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("data-throughput", ThroughputPacer),
        ("video-bandwidth", BandwidthSampler),
        ("network-latency", LatencyProbe),
        ("network-latency-relay", LatencyProbe),
    ],
)
def test_create_builds_named_test_on_its_own_session(name, expected, settings):
    made = []

    def factory(ice_policy):
        made.append(FakeSession(ice_policy))
        return made[-1]

    case = build_default_registry().get(name)
    test = case.create(factory, settings)

    assert isinstance(test, expected)
    assert test.name == name
    assert test.reporter.test_name == name
    assert test.session is made[0]
    assert made[0].ice_policy is case.ice_policy


async def test_run_uses_case_ice_policy(settings):
    sessions = []

    def factory(ice_policy):
        sessions.append(FakeSession(ice_policy, auto_deliver=True))
        return sessions[-1]

    result = await build_default_registry().run("data-throughput", factory, settings)

    assert result is not None
    assert result.test_name == "data-throughput"
    assert result.passed
    assert len(sessions) == 1
    assert sessions[0].ice_policy is IcePolicy.RELAY
    assert sessions[0].close_count == 1


async def test_custom_case_can_be_registered():
    registry = TestRegistry()
    registry.register(
        TestCase(
            suite="custom",
            name="tiny-throughput",
            description="A very short throughput run",
            factory=lambda session, reporter, settings: ThroughputPacer(
                session, reporter, ThroughputConfig(duration_ms=5)
            ),
        )
    )

    result = await registry.run(
        "tiny-throughput", lambda policy: FakeSession(policy, auto_deliver=True),
        NetperfRunnerSettings(),
    )

    assert result is not None
    assert result.test_name == "tiny-throughput"
    assert registry.get("tiny-throughput").ice_policy is IcePolicy.ALL
