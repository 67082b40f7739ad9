import asyncio
import threading

import pytest

from formcoach.config import CoachConfig
from formcoach.difficulty import DifficultyPolicy, QTablePolicy
from formcoach.errors import StoreError
from formcoach.exercises import ExerciseKind, Limb
from formcoach.pipeline import FrameWorker, WorkoutCoordinator
from formcoach.rep_counter import RepEvent
from formcoach.stores import JsonFileStore, MemoryStore

from helpers import make_frame, short_frame

BICEP = ExerciseKind.BICEP_CURL
SQUAT = ExerciseKind.SQUAT


class FixedPolicy(DifficultyPolicy):
    def __init__(self, action):
        self.action = action
        self.updates = []

    def select_action(self, state):
        return self.action

    def update(self, state, action, reward, next_state):
        self.updates.append((state, action, reward))


class SlowStore(MemoryStore):
    def __init__(self):
        super().__init__()
        self.gate = threading.Event()

    def recent_samples(self, limit):
        self.gate.wait(5)
        return super().recent_samples(limit)


class BrokenStore(MemoryStore):
    def insert_sample(self, timestamp, angle, error_tags):
        raise StoreError("disk full")


def bicep_event(n, duration_ms=5000.0, limb=Limb.RIGHT):
    return RepEvent(exercise=BICEP, limb=limb, angle=60.0, duration_ms=duration_ms,
                    rep_number=n, timestamp_ms=n * duration_ms)


async def run_frames(coordinator, frames, exercise=BICEP, results=None):
    results = [] if results is None else results
    worker = FrameWorker(coordinator, exercise=exercise, on_rep=results.append)
    worker.start()
    for frame in frames:
        worker.submit(frame)
    await worker.stop()
    await coordinator.drain()
    return worker, results


def test_worker_counts_reps_for_both_arms():
    store = MemoryStore()

    async def scenario():
        coordinator = WorkoutCoordinator(store, CoachConfig(epsilon=0.0))
        coordinator.start_workout(BICEP)
        frames = [
            make_frame("bicep_curl", angle, ts=i * 1000.0,
                       tags=["elbow_away_from_body"] if i == 1 else [])
            for i, angle in enumerate([170, 150, 60, 30, 65, 155])
        ]
        worker, results = await run_frames(coordinator, frames)
        return coordinator, worker, results

    coordinator, worker, results = asyncio.run(scenario())

    assert len(results) == 2
    assert {r["event"]["limb"] for r in results} == {"left", "right"}
    for result in results:
        assert result["recorded"] is True
        assert result["event"]["angle"] == pytest.approx(60.0)
        assert result["event"]["duration_ms"] == 2000.0
        assert result["feedback"]["issues"] == ["ELBOW_SWINGING"]
        assert result["feedback"]["form_rating"] == "fair"
        assert result["feedback"]["speed_rating"] == "too_fast"

    assert worker.bank.counts() == {"left": 1, "right": 1}
    assert worker.frames_processed == 6
    assert coordinator.session.total_reps == 2
    assert coordinator.session.limb_reps == {"left": 1, "right": 1}
    samples = store.recent_samples(10)
    assert len(samples) == 2
    assert samples[0].error_tags == ("ELBOW_SWINGING",)


def test_bad_frames_are_skipped_without_touching_counters():
    async def scenario():
        coordinator = WorkoutCoordinator(MemoryStore())
        frames = [
            make_frame("bicep_curl", 170, ts=0),
            short_frame(ts=100),
            make_frame("bicep_curl", float("nan"), ts=200),
            make_frame("bicep_curl", 50, ts=300),
        ]
        return await run_frames(coordinator, frames)

    worker, results = asyncio.run(scenario())
    assert worker.frames_skipped == 2
    assert worker.frames_processed == 2
    assert len(results) == 2
    # No active session: reps are classified but not recorded
    assert all(r["recorded"] is False for r in results)


def test_exercise_switch_is_applied_between_frames():
    async def scenario():
        coordinator = WorkoutCoordinator(MemoryStore())
        results = []
        worker = FrameWorker(coordinator, exercise=BICEP, on_rep=results.append)
        worker.start()
        worker.submit(make_frame("bicep_curl", 170, ts=0))
        worker.select_exercise(SQUAT)
        worker.submit(make_frame("squat", 50, ts=100))
        worker.submit(make_frame("squat", 120, ts=200))
        worker.submit(make_frame("squat", 80, ts=300))
        worker.reset()
        worker.submit(make_frame("squat", 80, ts=400))
        await worker.stop()
        return worker, results

    worker, results = asyncio.run(scenario())
    assert worker.exercise == SQUAT
    assert [r["event"]["exercise"] for r in results] == ["squat", "squat"]
    assert worker.bank.counts() == {"left": 0, "right": 0}


def test_target_reps_stop_the_workout():
    store = MemoryStore()
    reports = []

    async def scenario():
        coordinator = WorkoutCoordinator(store)
        coordinator.subscribe_workouts(reports.append)
        coordinator.start_workout(BICEP, target_reps=1)
        frames = [make_frame("bicep_curl", a, ts=i * 2500.0) for i, a in enumerate([170, 50])]
        worker, results = await run_frames(coordinator, frames)
        return coordinator, results

    coordinator, results = asyncio.run(scenario())
    assert coordinator.session is None
    assert [r["recorded"] for r in results] == [True, False]
    assert results[0]["target_reached"] is True

    workouts = store.list_workouts()
    assert len(workouts) == 1
    assert workouts[0].summary.total_reps == 1
    assert len(reports) == 1
    assert reports[0]["workout_id"] == workouts[0].id
    assert store.all_ratings()[0].workout_id == workouts[0].id


def test_stop_workout_saves_rates_and_recommends():
    store = MemoryStore()
    store.insert_rating("W2", 4)
    store.insert_rating("W3", 1)
    seen = []

    async def scenario():
        coordinator = WorkoutCoordinator(store)
        coordinator.subscribe_recommendations(seen.append)
        coordinator.start_workout(BICEP)
        for n in (1, 2, 3):
            coordinator.on_rep(bicep_event(n), [])
        report = await coordinator.stop_workout()
        await coordinator.drain()
        return coordinator, report

    coordinator, report = asyncio.run(scenario())
    assert report["score"] == 100
    assert report["grade"] == "A+"
    assert report["auto_rating"] == 5
    assert store.get_workout(report["workout_id"]).summary.total_reps == 3
    assert coordinator.recommendations == ["W2", "W3"]
    assert seen[-1] == ["W2", "W3"]


def test_stop_without_session_returns_none():
    async def scenario():
        return await WorkoutCoordinator(MemoryStore()).stop_workout()

    assert asyncio.run(scenario()) is None


def test_empty_workout_is_not_saved():
    store = MemoryStore()

    async def scenario():
        coordinator = WorkoutCoordinator(store)
        coordinator.start_workout(SQUAT)
        return await coordinator.stop_workout()

    report = asyncio.run(scenario())
    assert report["workout_id"] is None
    assert report["score"] == 0
    assert store.list_workouts() == []


def test_difficulty_updates_after_a_full_batch():
    policy = FixedPolicy(1)
    published = []

    async def scenario():
        coordinator = WorkoutCoordinator(MemoryStore(), policy=policy)
        coordinator.subscribe_difficulty(published.append)
        for i in range(4):
            await coordinator.record_sample(45.0, [], timestamp=float(i))
        assert coordinator.difficulty == 1
        await coordinator.record_sample(45.0, [], timestamp=4.0)
        return coordinator

    coordinator = asyncio.run(scenario())
    assert coordinator.difficulty == 2
    assert published == [2]
    assert len(policy.updates) == 1


def test_async_observers_are_awaited():
    published = []

    async def observer(value):
        await asyncio.sleep(0)
        published.append(value)

    async def scenario():
        coordinator = WorkoutCoordinator(MemoryStore())
        coordinator.subscribe_recommendations(observer)
        coordinator.unsubscribe(observer)
        coordinator.subscribe_recommendations(observer)
        await coordinator.update_recommendations()

    asyncio.run(scenario())
    assert published == [[]]


def test_cancel_pending_leaves_difficulty_untouched():
    store = SlowStore()
    for i in range(5):
        store.insert_sample(float(i), 45.0, [])
    policy = FixedPolicy(1)

    async def scenario():
        coordinator = WorkoutCoordinator(store, policy=policy)
        task = coordinator.spawn(coordinator.update_difficulty())
        await asyncio.sleep(0.05)
        await coordinator.cancel_pending()
        store.gate.set()
        return coordinator, task

    coordinator, task = asyncio.run(scenario())
    assert task.cancelled()
    assert coordinator.difficulty == 1
    assert policy.updates == []


def test_storage_failure_surfaces_to_awaiter():
    policy = FixedPolicy(1)

    async def scenario():
        coordinator = WorkoutCoordinator(BrokenStore(), policy=policy)
        with pytest.raises(StoreError):
            await coordinator.record_sample(45.0, [])
        return coordinator

    coordinator = asyncio.run(scenario())
    assert coordinator.difficulty == 1
    assert policy.updates == []


def test_cancel_pending_still_saves_a_finished_workout():
    store = SlowStore()
    reports = []

    async def scenario():
        coordinator = WorkoutCoordinator(store, policy=FixedPolicy(0))
        coordinator.subscribe_workouts(reports.append)
        coordinator.start_workout(BICEP, target_reps=1)
        result = coordinator.on_rep(bicep_event(1), [])
        await asyncio.sleep(0)
        # Another client leaving must not lose this client's workout
        await coordinator.cancel_pending()
        store.gate.set()
        return coordinator, result

    coordinator, result = asyncio.run(scenario())
    assert result["target_reached"]
    assert coordinator.session is None
    assert len(store.list_workouts()) == 1
    assert [r.rating for r in store.all_ratings()] == [5]
    assert reports[0]["workout_id"] == store.list_workouts()[0].id


def test_difficulty_step_saves_controller_state():
    store = MemoryStore()

    async def scenario():
        coordinator = WorkoutCoordinator(store, CoachConfig(epsilon=0.0, seed=1))
        for i in range(5):
            await coordinator.record_sample(45.0, [], timestamp=float(i))
        return coordinator

    coordinator = asyncio.run(scenario())
    state = store.load_controller_state()
    assert state["difficulty"] == coordinator.difficulty
    assert list(state["policy"]["q"]) == ["45,0"]


def test_learned_policy_survives_restart(tmp_path):
    path = tmp_path / "formcoach.json"
    config = CoachConfig(epsilon=0.0, seed=1)

    async def first_run():
        coordinator = WorkoutCoordinator(JsonFileStore(path), config)
        for i in range(5):
            await coordinator.record_sample(45.0, [], timestamp=float(i))
        return coordinator

    first = asyncio.run(first_run())
    second = WorkoutCoordinator(JsonFileStore(path), config)
    assert set(second.controller.policy.q) == set(first.controller.policy.q)
    for state, values in first.controller.policy.q.items():
        assert second.controller.policy.q[state].tolist() == pytest.approx(values.tolist())
    assert second.difficulty == first.difficulty


def test_coordinator_restores_saved_difficulty():
    store = MemoryStore()
    store.save_controller_state({"difficulty": 3, "policy": QTablePolicy(seed=0).to_dict()})
    coordinator = WorkoutCoordinator(store, CoachConfig(epsilon=0.25))
    assert coordinator.difficulty == 3
    assert coordinator.controller.policy.epsilon == 0.25


def test_coordinator_ignores_corrupt_difficulty_state():
    store = MemoryStore()
    store.save_controller_state({"difficulty": "hard", "policy": {"q": {"45,0": [1.0]}}})
    coordinator = WorkoutCoordinator(store)
    assert coordinator.difficulty == 1
    assert coordinator.controller.policy.q == {}


def test_stopped_worker_cancels_undelivered_rep_messages():
    delivered = []

    async def scenario():
        release = asyncio.Event()

        async def slow_send(result):
            await release.wait()
            delivered.append(result)

        coordinator = WorkoutCoordinator(MemoryStore())
        worker = FrameWorker(coordinator, exercise=BICEP, on_rep=slow_send)
        worker.start()
        for ts, angle in enumerate([170, 150, 60, 65, 155]):
            worker.submit(make_frame("bicep_curl", angle, ts=ts * 100))
        await worker.queue.join()
        await worker.stop()
        release.set()
        await asyncio.sleep(0)
        await coordinator.drain()

    asyncio.run(scenario())
    assert delivered == []
