from repsense.detectors import ALL_EXERCISES, Exercise
from repsense.session import WorkoutSession

ZERO = {e: 0 for e in ALL_EXERCISES}


def _hand(make_frame, wrist_y, t):
    return make_frame({"left_wrist": (300, wrist_y), "left_shoulder": (300, 150)}, t=t)


def test_hand_lift_scenario(make_frame):
    session = WorkoutSession()
    pending = []
    for wrist_y, t in [(100, 0), (100, 33), (200, 66), (100, 99)]:
        session.process(_hand(make_frame, wrist_y, t))
        pending.append(session.pending[Exercise.HAND_LIFTS])
    assert pending == [1, 1, 1, 2]
    # first event published immediately, second waits for the flush interval
    assert session.counts[Exercise.HAND_LIFTS] == 1
    session.flush(now_ms=900)
    assert session.counts[Exercise.HAND_LIFTS] == 2


def test_frames_without_valid_keypoints_change_nothing(make_frame):
    session = WorkoutSession()
    for t in range(0, 3000, 50):
        frame = make_frame({"left_wrist": (300, 100), "left_shoulder": (300, 150)}, t=t, score=0.1)
        assert session.process(frame) == []
        assert session.process(make_frame({}, t=t)) == []
    assert session.counts == ZERO
    assert session.pending == ZERO
    assert session.registry.states() == WorkoutSession().registry.states()


def test_other_counts_unaffected_by_one_cycle(make_frame):
    session = WorkoutSession()
    session.process(make_frame({"right_knee": (340, 300), "right_hip": (320, 200)}, t=0))
    session.process(make_frame({"right_knee": (320, 230), "right_hip": (320, 200)}, t=900))
    expected = dict(ZERO, **{Exercise.LUNGES: 1})
    assert session.counts == expected


def test_reset_then_cycle_counts_from_zero(make_frame):
    session = WorkoutSession()
    for t in (0, 1000, 2000):
        session.process(_hand(make_frame, 100, t))
        session.process(_hand(make_frame, 200, t + 500))
    session.flush(now_ms=2600, force=True)
    assert session.counts[Exercise.HAND_LIFTS] == 3

    session.process(_hand(make_frame, 100, 3000))
    session.reset()
    assert session.counts == ZERO
    assert session.pending == ZERO
    assert session.frames_processed == 0

    # the wrist is still raised, but reset returned the detector to rest
    session.process(_hand(make_frame, 200, 3100))
    session.process(_hand(make_frame, 100, 4000))
    assert session.counts[Exercise.HAND_LIFTS] == 1


def test_close_flushes_pending_and_ignores_later_frames(make_frame):
    session = WorkoutSession()
    session.process(_hand(make_frame, 100, 0))
    session.process(_hand(make_frame, 200, 10))
    session.process(_hand(make_frame, 100, 20))
    assert session.counts[Exercise.HAND_LIFTS] == 1
    assert session.close() == {Exercise.HAND_LIFTS: 2}
    assert session.counts[Exercise.HAND_LIFTS] == 2
    assert session.close() == {}
    session.process(_hand(make_frame, 200, 30))
    assert session.process(_hand(make_frame, 100, 40)) == []
    assert session.pending[Exercise.HAND_LIFTS] == 2


def test_min_confidence_setting(make_frame):
    session = WorkoutSession(min_confidence=0.95)
    session.process(_hand(make_frame, 100, 0))
    assert session.pending == ZERO


def test_process_uses_explicit_time_over_frame_time(make_frame):
    session = WorkoutSession()
    events = session.process(_hand(make_frame, 100, 0), now_ms=5000)
    assert events[0].timestamp_ms == 5000
