from repsense.steps import StepCounter


def test_resting_device_counts_nothing():
    counter = StepCounter()
    for _ in range(10):
        assert not counter.push(0.0, 9.81, 0.0)
    assert counter.steps == 0


def test_sharp_change_counts_a_step():
    counter = StepCounter()
    counter.push(0.0, 9.81, 0.0)
    assert counter.push(0.0, 25.0, 0.0)
    assert not counter.push(0.0, 24.0, 0.0)
    assert counter.push(0.0, 9.0, 0.0)
    assert counter.steps == 2


def test_non_finite_samples_are_ignored():
    counter = StepCounter()
    counter.push(0.0, 9.81, 0.0)
    assert not counter.push(float("nan"), 0.0, 0.0)
    assert counter.push(0.0, 30.0, 0.0)


def test_reset():
    counter = StepCounter(threshold=1.0)
    counter.push(0.0, 5.0, 0.0)
    counter.reset()
    assert counter.steps == 0
    assert not counter.push(0.0, 0.5, 0.0)
