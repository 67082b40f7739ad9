import pytest

from formcoach.coaches import FormClassifier, FormRating, RepFeedback, SpeedRating
from formcoach.coaches.feedback_generator import (
    TEMPO_ADVICE,
    generate_rep_details,
    generate_workout_report,
    issue_frequency,
    tempo_advice,
)
from formcoach.exercises import ExerciseKind, Limb
from formcoach.rep_counter import RepEvent
from formcoach.session import WorkoutSession, WorkoutSummary

classifier = FormClassifier()


def event(n, limb=Limb.RIGHT, exercise=ExerciseKind.SQUAT):
    return RepEvent(exercise=exercise, limb=limb, angle=90.0, duration_ms=4000.0,
                    rep_number=n, timestamp_ms=n * 4000.0)


def squat_feedback(tags=(), duration=4000):
    return classifier.classify(ExerciseKind.SQUAT, 90.0, tags, duration)


def test_reps_outside_active_session_are_not_recorded():
    session = WorkoutSession(exercise=ExerciseKind.SQUAT)
    result = session.record_rep(event(1), squat_feedback())
    assert result["recorded"] is False
    assert session.total_reps == 0


def test_session_records_and_summarizes():
    session = WorkoutSession(exercise=ExerciseKind.SQUAT)
    session.start(now_ms=1_000)
    session.record_rep(event(1, Limb.LEFT), squat_feedback())
    session.record_rep(event(1, Limb.RIGHT), squat_feedback(["knees_inward"]))
    assert session.limb_reps == {"left": 1, "right": 1}
    assert session.perfect_reps == 1

    summary = session.finish(difficulty=3, now_ms=66_000)
    assert not session.is_active
    assert summary.total_reps == 2
    assert summary.perfect_reps == 1
    assert summary.score == 60
    assert summary.grade == "C+"
    assert summary.perfect_form_percentage == 50
    assert summary.formatted_duration == "01:05"
    assert summary.difficulty_at_end == 3


def test_target_reps():
    session = WorkoutSession(exercise=ExerciseKind.SQUAT, target_reps=2)
    session.start()
    assert session.remaining_reps == 2
    assert session.record_rep(event(1), squat_feedback())["target_reached"] is False
    assert session.record_rep(event(2), squat_feedback())["target_reached"] is True
    assert session.remaining_reps == 0
    assert session.get_progress()["total_reps"] == 2


def test_no_target_means_no_remaining():
    session = WorkoutSession(exercise=ExerciseKind.SQUAT)
    session.start()
    assert session.remaining_reps is None


def test_finish_requires_start():
    with pytest.raises(RuntimeError):
        WorkoutSession(exercise=ExerciseKind.SQUAT).finish(difficulty=1)


def test_summary_dict_round_trip():
    summary = WorkoutSummary(exercise=ExerciseKind.LUNGE, start_time=5.0, duration_ms=1234.0,
                             total_reps=3, perfect_reps=2, avg_angle=91.5, score=88,
                             difficulty_at_end=2)
    assert WorkoutSummary.from_dict(summary.to_dict()) == summary


def test_issue_frequency_orders_by_count():
    feedbacks = [
        squat_feedback(["shallow_depth"]),
        squat_feedback(["knees_inward", "shallow_depth"]),
        squat_feedback(["knees_inward", "shallow_depth"]),
        squat_feedback(["leaning_forward"]),
    ]
    assert issue_frequency(feedbacks) == {"SHALLOW_DEPTH": 3, "KNEE_INWARD": 2, "LEANING_FORWARD": 1}


def test_tempo_advice_needs_more_than_a_third():
    fast = squat_feedback(duration=1000)
    good = squat_feedback()
    assert tempo_advice([fast, good, good]) == TEMPO_ADVICE[SpeedRating.GOOD_PACE]
    assert tempo_advice([fast, fast, good]) == TEMPO_ADVICE[SpeedRating.TOO_FAST]
    slow = squat_feedback(duration=9000)
    assert tempo_advice([slow, slow, good, good]) == TEMPO_ADVICE[SpeedRating.TOO_SLOW]


def test_rep_details_are_numbered():
    details = generate_rep_details([squat_feedback(), squat_feedback(["heels_rising"])])
    assert [d["rep_number"] for d in details] == [1, 2]
    assert details[1]["issues"] == ["HEELS_RISING"]


def test_workout_report():
    session = WorkoutSession(exercise=ExerciseKind.SQUAT)
    session.start(now_ms=0)
    feedbacks = [squat_feedback(["knees_inward"]), squat_feedback(["knees_inward"]), squat_feedback()]
    for n, f in enumerate(feedbacks, start=1):
        session.record_rep(event(n), f)
    summary = session.finish(difficulty=1, now_ms=30_000)

    report = generate_workout_report(summary, feedbacks)
    assert report["score"] == summary.score
    assert report["grade"] == summary.grade
    assert report["duration"] == "00:30"
    assert report["primary_recommendation"] == "Focus on: Push knees outward in line with toes"
    assert report["secondary_recommendation"] == TEMPO_ADVICE[SpeedRating.GOOD_PACE]
    assert report["top_issues"][0]["issue"] == "KNEE_INWARD"
    assert report["top_issues"][0]["count"] == 2
    assert report["top_issues"][0]["percentage"] == pytest.approx(66.7)
    assert [p["rating"] for p in report["form_quality_over_time"]] == ["Poor Form", "Poor Form", "Perfect Form"]


def test_report_without_issues():
    feedbacks = [RepFeedback(60.0, (), FormRating.PERFECT, SpeedRating.GOOD_PACE, "")]
    summary = WorkoutSummary(ExerciseKind.BICEP_CURL, 0.0, 5000.0, 1, 1, 60.0, 100, 1)
    report = generate_workout_report(summary, feedbacks)
    assert report["primary_recommendation"] == "No form issues detected. Excellent work!"
    assert report["top_issues"] == []
