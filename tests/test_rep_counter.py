import pytest

from formcoach.exercises import ExerciseKind, Limb
from formcoach.rep_counter import RepCounter, RepCounterBank, Stage

BICEP_RANGE = (70.0, 160.0)


def feed(counter, angles, frame_ms=100.0):
    events = []
    for i, angle in enumerate(angles):
        event = counter.update(angle, i * frame_ms)
        if event is not None:
            events.append(event)
    return events


def test_bicep_cycle_emits_exactly_one_rep():
    counter = RepCounter(ExerciseKind.BICEP_CURL, Limb.RIGHT, BICEP_RANGE)
    events = feed(counter, [170, 150, 60, 30, 65, 155])
    assert len(events) == 1
    # Fires on the first sample below min; the deeper 30 sample is latched out
    assert events[0].angle == 60
    assert events[0].rep_number == 1
    assert events[0].duration_ms == 200.0
    assert counter.state.stage == Stage.UP
    assert counter.state.latch is True


def test_initial_state():
    counter = RepCounter(ExerciseKind.SQUAT, Limb.LEFT, (85, 95))
    assert counter.state.stage == Stage.UNKNOWN
    assert counter.state.latch is False
    assert counter.rep_count == 0


def test_in_band_noise_emits_nothing():
    counter = RepCounter(ExerciseKind.BICEP_CURL, Limb.LEFT, BICEP_RANGE)
    assert feed(counter, [100, 120, 80, 150, 71, 159, 90] * 5) == []
    assert counter.state.stage == Stage.UNKNOWN


def test_in_band_angles_never_change_stage():
    counter = RepCounter(ExerciseKind.BICEP_CURL, Limb.LEFT, BICEP_RANGE)
    counter.update(170, 0)
    for angle in (150, 100, 71, 160, 70):
        counter.update(angle, 1)
        assert counter.state.stage == Stage.DOWN


def test_oscillation_above_max_emits_nothing():
    counter = RepCounter(ExerciseKind.BICEP_CURL, Limb.LEFT, BICEP_RANGE)
    assert feed(counter, [165, 175, 161, 170] * 4) == []


def test_oscillation_below_min_without_arming_emits_nothing():
    counter = RepCounter(ExerciseKind.BICEP_CURL, Limb.LEFT, BICEP_RANGE)
    assert feed(counter, [60, 30, 65, 20] * 4) == []


def test_jitter_below_min_counts_once():
    counter = RepCounter(ExerciseKind.BICEP_CURL, Limb.LEFT, BICEP_RANGE)
    events = feed(counter, [170, 60, 75, 60, 72, 50])
    assert len(events) == 1


def test_multiple_cycles_and_durations():
    counter = RepCounter(ExerciseKind.BICEP_CURL, Limb.RIGHT, BICEP_RANGE)
    events = feed(counter, [170, 50, 170, 50, 170, 50], frame_ms=1000.0)
    assert [e.rep_number for e in events] == [1, 2, 3]
    # First rep is timed from the first sample, later reps from the previous rep
    assert [e.duration_ms for e in events] == [1000.0, 2000.0, 2000.0]


def test_clear_resets_state():
    counter = RepCounter(ExerciseKind.BICEP_CURL, Limb.RIGHT, BICEP_RANGE)
    feed(counter, [170, 50])
    counter.clear()
    assert counter.rep_count == 0
    assert counter.state.stage == Stage.UNKNOWN
    assert feed(counter, [50, 170, 50]) != []


def test_invalid_range_rejected():
    with pytest.raises(ValueError):
        RepCounter(ExerciseKind.BICEP_CURL, Limb.RIGHT, (160, 70))


def test_rep_event_to_dict():
    counter = RepCounter(ExerciseKind.SQUAT, Limb.LEFT, (85, 95))
    event = feed(counter, [120, 80.04])[0]
    assert event.to_dict() == {
        "exercise": "squat",
        "limb": "left",
        "angle": 80.0,
        "duration_ms": 100.0,
        "rep_number": 1,
        "timestamp_ms": 100.0,
    }


def test_bank_tracks_limbs_independently():
    bank = RepCounterBank()
    bank.select(ExerciseKind.BICEP_CURL)
    bank.update({Limb.LEFT: 170, Limb.RIGHT: 170}, 0)
    events = bank.update({Limb.LEFT: 50, Limb.RIGHT: 120}, 100)
    assert [e.limb for e in events] == [Limb.LEFT]
    assert bank.counts() == {"left": 1, "right": 0}


def test_bank_switch_discards_counters():
    bank = RepCounterBank()
    bank.select(ExerciseKind.BICEP_CURL)
    bank.update({Limb.LEFT: 170}, 0)
    bank.update({Limb.LEFT: 50}, 100)
    bank.select(ExerciseKind.SQUAT)
    assert bank.counts() == {"left": 0, "right": 0}
    assert bank.counter(Limb.LEFT).exercise == ExerciseKind.SQUAT


def test_bank_reselecting_same_exercise_keeps_counts():
    bank = RepCounterBank()
    bank.select(ExerciseKind.BICEP_CURL)
    bank.update({Limb.RIGHT: 170}, 0)
    bank.update({Limb.RIGHT: 50}, 100)
    bank.select(ExerciseKind.BICEP_CURL)
    assert bank.counts()["right"] == 1
    bank.clear()
    assert bank.counts()["right"] == 0


def test_bank_requires_selection():
    with pytest.raises(RuntimeError):
        RepCounterBank().counter(Limb.LEFT)

