import math

from netperf_runner.aggregate import RunningAggregate, Sample


def test_average_and_max_track_all_samples():
    aggregate = RunningAggregate()
    values = [3.0, 9.5, 1.0, 7.25, 9.5, 4.0]
    for i, value in enumerate(values):
        aggregate.add(i * 100, value)

    assert aggregate.count == len(values)
    assert aggregate.get_average() == sum(values) / len(values)
    assert aggregate.get_max() == 9.5


def test_empty_aggregate_has_no_average_or_max():
    aggregate = RunningAggregate(ramp_up_threshold=10)

    assert len(aggregate) == 0
    assert aggregate.get_average() is None
    assert aggregate.get_max() is None
    assert math.isinf(aggregate.get_ramp_up_time())


def test_ramp_up_time_is_measured_from_first_sample():
    threshold = 1500.0
    aggregate = RunningAggregate(ramp_up_threshold=threshold)
    aggregate.add(0, 0)
    aggregate.add(100, threshold)
    aggregate.add(200, 2 * threshold)

    assert aggregate.get_ramp_up_time() == 100


def test_ramp_up_uses_first_crossing_only():
    aggregate = RunningAggregate(ramp_up_threshold=10)
    aggregate.add(1000, 5)
    aggregate.add(1250, 12)
    aggregate.add(1500, 3)
    aggregate.add(1750, 20)

    assert aggregate.get_ramp_up_time() == 250


def test_ramp_up_never_reached_is_infinite():
    aggregate = RunningAggregate(ramp_up_threshold=100)
    for t in range(0, 1000, 100):
        aggregate.add(t, 99.9)

    ramp_up = aggregate.get_ramp_up_time()
    assert math.isinf(ramp_up)
    assert ramp_up > 0


def test_ramp_up_without_threshold_is_infinite():
    aggregate = RunningAggregate()
    aggregate.add(0, 1e9)

    assert math.isinf(aggregate.get_ramp_up_time())


def test_single_sample_at_threshold_reaches_at_zero():
    aggregate = RunningAggregate(ramp_up_threshold=42)
    aggregate.add(5000, 42)

    assert aggregate.get_ramp_up_time() == 0


def test_samples_are_recorded_in_order():
    aggregate = RunningAggregate()
    aggregate.add(10, 1)
    aggregate.add(10, 2)
    aggregate.add(20, 3)

    assert aggregate.samples == [Sample(10, 1), Sample(10, 2), Sample(20, 3)]
    assert aggregate.samples[0].timestamp == 10


def test_std_dev_is_population_spread():
    aggregate = RunningAggregate()
    assert aggregate.get_std_dev() is None

    for i, value in enumerate([2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0]):
        aggregate.add(i, value)

    assert aggregate.get_std_dev() == 2.0
