"""
Asynchronous analysis pipeline for formcoach.

FrameWorker consumes frames strictly in arrival order on one asyncio task:
angles -> rep counters -> (on rep) form classification. Everything that
touches storage runs as separate tasks owned by WorkoutCoordinator, with the
blocking store calls pushed to threads, so the frame loop never waits on I/O.

WorkoutCoordinator is the process-lifetime owner of the difficulty value and
the recommendation list. It is the only writer of both and publishes each new
value to observers once it is completely computed.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from .coaches.feedback_generator import generate_workout_report
from .coaches.form_classifier import FormClassifier, RepFeedback
from .config import CoachConfig
from .difficulty import DifficultyController, DifficultyPolicy, DifficultyUpdate, QTablePolicy
from .errors import InsufficientLandmarksError, InvalidGeometryError, StoreError
from .exercises import ExerciseKind, Limb
from .kinematics import FrameLandmarks, extract_exercise_angles
from .recommender import ItemBasedRecommender
from .rep_counter import RepCounterBank, RepEvent
from .scoring import rating_from_score
from .session import WorkoutSession, WorkoutSummary
from .stores.base import Store

logger = logging.getLogger(__name__)

Observer = Callable[[Any], Optional[Awaitable[None]]]


class WorkoutCoordinator:
    """
    Session lifecycle, sample persistence, difficulty control and
    recommendations.

    Usage:
        coordinator = WorkoutCoordinator(MemoryStore())
        coordinator.subscribe_difficulty(lambda d: print("difficulty", d))

        coordinator.start_workout(ExerciseKind.SQUAT, target_reps=10)
        # FrameWorker calls coordinator.on_rep(...) for every rep
        report = await coordinator.stop_workout()
    """

    def __init__(
        self,
        store: Store,
        config: Optional[CoachConfig] = None,
        policy: Optional[DifficultyPolicy] = None,
    ):
        self.store = store
        self.config = config or CoachConfig()
        self.exercises = self.config.exercise_table()
        self.classifier = FormClassifier(self.exercises)
        self.controller = self._build_controller(policy)
        self.recommender = ItemBasedRecommender(store, k=self.config.top_k)
        self.recommendations: List[str] = []
        self.session: Optional[WorkoutSession] = None

        self._controller_lock = asyncio.Lock()
        self._recommend_lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()
        # Workout and rating writes; these outlive any one client
        self._persist_tasks: Set[asyncio.Task] = set()
        self._observers: Dict[str, List[Observer]] = defaultdict(list)

    def _build_controller(self, policy: Optional[DifficultyPolicy]) -> DifficultyController:
        """Restore the learned policy and level saved by a previous run, if any."""
        state = self.store.load_controller_state() or {}
        difficulty = 1
        if policy is None:
            policy = QTablePolicy(epsilon=self.config.epsilon, seed=self.config.seed)
            try:
                if state.get("policy"):
                    policy = QTablePolicy.from_dict(state["policy"], seed=self.config.seed)
                    policy.epsilon = self.config.epsilon
                difficulty = int(state.get("difficulty", 1))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning("Ignoring saved difficulty state: %s", e)
                policy = QTablePolicy(epsilon=self.config.epsilon, seed=self.config.seed)
                difficulty = 1
            else:
                if state:
                    logger.info("Restored difficulty %d with %d learned states",
                                difficulty, len(policy.q))
        return DifficultyController(
            policy,
            batch_size=self.config.batch_size,
            target_angle=self.config.target_angle,
            reward_tolerance=self.config.reward_tolerance,
            initial_difficulty=difficulty,
        )

    # ---- observers ----

    @property
    def difficulty(self) -> int:
        return self.controller.difficulty

    def subscribe_difficulty(self, callback: Observer):
        self._observers["difficulty"].append(callback)

    def subscribe_recommendations(self, callback: Observer):
        self._observers["recommendations"].append(callback)

    def subscribe_workouts(self, callback: Observer):
        self._observers["workout"].append(callback)

    def unsubscribe(self, callback: Observer):
        for callbacks in self._observers.values():
            if callback in callbacks:
                callbacks.remove(callback)

    async def _publish(self, topic: str, value: Any):
        for callback in list(self._observers[topic]):
            try:
                result = callback(value)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Observer for %s failed", topic)

    # ---- task bookkeeping ----

    def spawn(self, coro, persist: bool = False) -> asyncio.Task:
        """Track a background task; ``persist`` tasks are never cancelled."""
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        if persist:
            self._persist_tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        self._persist_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task failed: %s", exc, exc_info=exc)

    async def drain(self):
        """Wait for every in-flight background task, including ones they spawn."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_pending(self):
        """
        Cancel in-flight sample, difficulty and recommendation work, e.g. when
        the last client disconnects. Workout and rating writes are awaited
        instead, so a finished workout is always saved.
        """
        cancelled = [task for task in self._tasks if task not in self._persist_tasks]
        for task in cancelled:
            task.cancel()
        await asyncio.gather(*cancelled, *list(self._persist_tasks), return_exceptions=True)

    # ---- session lifecycle ----

    def start_workout(self, exercise: ExerciseKind, target_reps: int = 0) -> WorkoutSession:
        if self.session is not None and self.session.is_active:
            logger.info("Workout already active for %s", self.session.exercise.value)
            return self.session
        self.session = WorkoutSession(exercise=exercise, target_reps=max(0, int(target_reps)))
        self.session.start()
        logger.info("Workout started: %s (target=%d)", exercise.value, self.session.target_reps)
        return self.session

    def _close_session(self) -> Optional[Tuple[WorkoutSummary, List[RepFeedback]]]:
        session = self.session
        if session is None or not session.is_active:
            return None
        summary = session.finish(difficulty=self.difficulty)
        feedbacks = list(session.feedbacks)
        self.session = None
        logger.info("Workout finished: %s, %d reps, score %d",
                    summary.exercise.value, summary.total_reps, summary.score)
        return summary, feedbacks

    async def stop_workout(self) -> Optional[Dict[str, Any]]:
        """Finish the active session, persist it, and return the workout report."""
        closed = self._close_session()
        if closed is None:
            return None
        return await self._persist_workout(*closed)

    async def _persist_workout(self, summary: WorkoutSummary,
                               feedbacks: List[RepFeedback]) -> Dict[str, Any]:
        report = generate_workout_report(summary, feedbacks)
        report["workout_id"] = None
        report["auto_rating"] = None
        if feedbacks:
            workout_id = await asyncio.to_thread(self.store.save_workout, summary, feedbacks)
            rating = rating_from_score(summary.score)
            report["workout_id"] = workout_id
            report["auto_rating"] = rating
            await self._submit_rating(workout_id, rating)
        await self._publish("workout", report)
        return report

    # ---- reps ----

    def on_rep(self, event: RepEvent, tags: List[str]) -> Dict[str, Any]:
        """
        Classify a completed rep and record it in the active session.
        Called from the frame worker; never awaits.
        """
        feedback = self.classifier.classify(event.exercise, event.angle, tags, event.duration_ms)
        result: Dict[str, Any] = {
            "event": event.to_dict(),
            "feedback": feedback.to_dict(),
            "recorded": False,
            "target_reached": False,
        }

        session = self.session
        if session is None or session.exercise != event.exercise:
            return result

        outcome = session.record_rep(event, feedback)
        result["recorded"] = outcome["recorded"]
        result["target_reached"] = outcome["target_reached"]
        result["progress"] = session.get_progress()
        if not outcome["recorded"]:
            return result

        logger.info("Rep %d (%s %s): %s, %s", outcome["total_reps"], event.exercise.value,
                    event.limb.value, feedback.form_rating.value, feedback.speed_rating.value)
        self.record_sample(event.angle, feedback.issue_tags)

        if outcome["target_reached"]:
            closed = self._close_session()
            if closed is not None:
                self.spawn(self._persist_workout(*closed), persist=True)
        return result

    def record_sample(self, angle: float, error_tags: List[str],
                      timestamp: Optional[float] = None) -> asyncio.Task:
        ts = timestamp if timestamp is not None else time.time() * 1000.0
        return self.spawn(self._record_sample(ts, angle, error_tags))

    async def _record_sample(self, timestamp: float, angle: float, error_tags: List[str]):
        await asyncio.to_thread(self.store.insert_sample, timestamp, angle, list(error_tags))
        await self.update_difficulty()

    async def update_difficulty(self) -> Optional[DifficultyUpdate]:
        """One controller step over the latest batch; None while the batch is short."""
        async with self._controller_lock:
            samples = await asyncio.to_thread(self.store.recent_samples, self.controller.batch_size)
            update = self.controller.step(samples)
            if update is not None:
                await self._save_controller()
        if update is not None:
            await self._publish("difficulty", update.difficulty)
        return update

    async def _save_controller(self):
        try:
            await asyncio.to_thread(self.store.save_controller_state, self.controller.to_dict())
        except StoreError as e:
            # The new level is still valid for this run
            logger.error("Failed to save difficulty state: %s", e)

    # ---- ratings ----

    def submit_rating(self, workout_id: str, rating: int) -> asyncio.Task:
        return self.spawn(self._submit_rating(workout_id, rating), persist=True)

    async def _submit_rating(self, workout_id: str, rating: int):
        await asyncio.to_thread(self.store.insert_rating, workout_id, int(rating))
        await self.update_recommendations()

    async def update_recommendations(self) -> List[str]:
        async with self._recommend_lock:
            recs = await asyncio.to_thread(self.recommender.recommend)
            self.recommendations = recs
        await self._publish("recommendations", list(recs))
        return recs


_STOP = object()


class FrameWorker:
    """
    Single-consumer frame loop.

    Exercise switches and resets travel through the same queue as frames, so
    they always land between two frames. ``stop`` is cooperative: the worker
    finishes the frame in hand and exits.
    """

    def __init__(
        self,
        coordinator: WorkoutCoordinator,
        exercise: ExerciseKind = ExerciseKind.BICEP_CURL,
        on_rep: Optional[Observer] = None,
        maxsize: int = 0,
    ):
        self.coordinator = coordinator
        self.bank = RepCounterBank(coordinator.exercises)
        self.bank.select(exercise)
        self.on_rep = on_rep
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.frames_processed = 0
        self.frames_skipped = 0
        self.last_angles: Dict[str, float] = {}
        self._pending_tags: Dict[Limb, Set[str]] = defaultdict(set)
        self._task: Optional[asyncio.Task] = None
        self._notify_tasks: Set[asyncio.Task] = set()

    @property
    def exercise(self) -> ExerciseKind:
        return self.bank.exercise

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if self.running:
            return self._task
        self._task = asyncio.create_task(self.run())
        return self._task

    def submit(self, frame: FrameLandmarks):
        self.queue.put_nowait(("frame", frame))

    def select_exercise(self, exercise: ExerciseKind):
        self.queue.put_nowait(("select", exercise))

    def reset(self):
        self.queue.put_nowait(("reset", None))

    async def stop(self):
        if self._task is None:
            return
        self.queue.put_nowait((_STOP, None))
        await self._task
        # Rep messages still in flight have nowhere to go
        tasks = list(self._notify_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def run(self):
        while True:
            kind, payload = await self.queue.get()
            try:
                if kind is _STOP:
                    break
                if kind == "select":
                    self._apply_exercise(payload)
                elif kind == "reset":
                    self.bank.clear()
                    self._pending_tags.clear()
                else:
                    for result in self.process_frame(payload):
                        self._notify(result)
            except Exception:
                logger.exception("Error processing %s message", kind)
            finally:
                self.queue.task_done()
        logger.info("Frame worker stopped after %d frames (%d skipped)",
                    self.frames_processed, self.frames_skipped)

    def _apply_exercise(self, exercise: ExerciseKind):
        if exercise != self.bank.exercise:
            self._pending_tags.clear()
        self.bank.select(exercise)

    def _notify(self, result: Dict[str, Any]):
        if self.on_rep is None:
            return
        outcome = self.on_rep(result)
        if inspect.isawaitable(outcome):
            task = asyncio.ensure_future(outcome)
            self._notify_tasks.add(task)
            task.add_done_callback(self._notify_done)

    def _notify_done(self, task: asyncio.Task):
        self._notify_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Rep callback failed: %s", task.exception(), exc_info=task.exception())

    def process_frame(self, frame: FrameLandmarks) -> List[Dict[str, Any]]:
        """Synchronous per-frame analysis; returns one result per completed rep."""
        config = self.bank.exercises[self.bank.exercise]
        try:
            angles = extract_exercise_angles(frame, config)
        except (InsufficientLandmarksError, InvalidGeometryError) as e:
            self.frames_skipped += 1
            logger.debug("Skipping frame: %s", e)
            return []

        self.frames_processed += 1
        self.last_angles = {limb.value: angle for limb, angle in angles.primary.items()}
        self.last_angles.update(angles.secondary)
        for limb in angles.primary:
            self._pending_tags[limb].update(frame.tags)

        results = []
        for event in self.bank.update(angles.primary, frame.timestamp_ms):
            tags = sorted(self._pending_tags.pop(event.limb, set()))
            results.append(self.coordinator.on_rep(event, tags))
        return results
