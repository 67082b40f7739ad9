"""
Feedback Generator - Creates the post-workout report from per-rep feedback.

This module takes the RepFeedback list of a finished session and produces
issue frequencies, a primary "focus" recommendation, and tempo advice.
"""

from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .form_classifier import FORM_RATING_DISPLAY, RepFeedback, SpeedRating
from .form_issues_config import CATALOG_ORDER, FORM_ISSUES, FormIssue

if TYPE_CHECKING:
    from ..session import WorkoutSummary

TEMPO_ADVICE = {
    SpeedRating.TOO_FAST: "Try slowing down your movements for better muscle engagement and control.",
    SpeedRating.TOO_SLOW: "Consider a slightly faster pace to maintain tension throughout the movement.",
    SpeedRating.GOOD_PACE: "Your exercise tempo is good. Keep up the consistent pace!",
}

NO_ISSUES_MESSAGE = "No form issues detected. Excellent work!"


def issue_frequency(feedbacks: List[RepFeedback]) -> Dict[str, int]:
    """Count how many reps showed each issue, most frequent first."""
    counts = Counter(issue.tag for f in feedbacks for issue in f.issues)
    return dict(sorted(counts.items(), key=lambda kv: (-kv[1], CATALOG_ORDER[kv[0]])))


def most_common_issue(feedbacks: List[RepFeedback]) -> Optional[FormIssue]:
    freq = issue_frequency(feedbacks)
    if not freq:
        return None
    return FORM_ISSUES[next(iter(freq))]


def tempo_advice(feedbacks: List[RepFeedback]) -> str:
    # More than a third of the reps at the wrong pace triggers advice
    speeds = Counter(f.speed_rating for f in feedbacks)
    third = len(feedbacks) // 3
    if speeds[SpeedRating.TOO_FAST] > third:
        return TEMPO_ADVICE[SpeedRating.TOO_FAST]
    if speeds[SpeedRating.TOO_SLOW] > third:
        return TEMPO_ADVICE[SpeedRating.TOO_SLOW]
    return TEMPO_ADVICE[SpeedRating.GOOD_PACE]


def generate_rep_details(feedbacks: List[RepFeedback]) -> List[Dict[str, Any]]:
    """Per-rep rows, numbered from 1."""
    details = []
    for number, feedback in enumerate(feedbacks, start=1):
        row = feedback.to_dict()
        row["rep_number"] = number
        details.append(row)
    return details


def generate_workout_report(
    summary: WorkoutSummary,
    feedbacks: List[RepFeedback],
    top_n: int = 3,
) -> Dict[str, Any]:
    """
    Build the report shown after a workout.

    Returns:
        Dict containing score and grade, top issues with counts and
        percentages, the primary (focus) and secondary (tempo)
        recommendations, and form quality over time.
    """
    freq = issue_frequency(feedbacks)
    total = len(feedbacks)

    top_issues = []
    for tag, count in list(freq.items())[:top_n]:
        issue = FORM_ISSUES[tag]
        top_issues.append({
            "issue": tag,
            "description": issue.description,
            "severity": issue.severity.name.lower(),
            "count": count,
            "percentage": round((count / total) * 100, 1) if total > 0 else 0,
            "tip": issue.tip,
        })

    top = most_common_issue(feedbacks)
    primary = f"Focus on: {top.tip}" if top else NO_ISSUES_MESSAGE

    return {
        "summary": summary.to_dict(),
        "score": summary.score,
        "grade": summary.grade,
        "perfect_form_percentage": summary.perfect_form_percentage,
        "duration": summary.formatted_duration,
        "issue_frequency": freq,
        "top_issues": top_issues,
        "primary_recommendation": primary,
        "secondary_recommendation": tempo_advice(feedbacks) if feedbacks else None,
        "form_quality_over_time": [
            {"rep_number": i, "rating": FORM_RATING_DISPLAY[f.form_rating]}
            for i, f in enumerate(feedbacks, start=1)
        ],
        "angle_over_time": [
            {"rep_number": i, "angle": round(f.angle, 1)} for i, f in enumerate(feedbacks, start=1)
        ],
    }
