"""
Form Classifier - turns the anomaly tags seen during a rep into RepFeedback.

1. Maps raw analyzer tags to catalog Form Issues for the exercise
2. Rates the rep's form from the issue severities
3. Rates the rep's tempo against the exercise's ideal duration window
4. Picks the corrective tip of the most severe issue
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..exercises import EXERCISE_CONFIG, ExerciseConfig, ExerciseKind
from .form_issues_config import CATALOG_ORDER, FORM_ISSUES, RAW_TAG_MAP, FormIssue, Severity

DEFAULT_TIP = "Great form! Keep it up!"


class FormRating(str, Enum):
    PERFECT = "perfect"
    GOOD = "good"
    FAIR = "fair"
    NEEDS_WORK = "needs_work"
    POOR = "poor"


class SpeedRating(str, Enum):
    TOO_FAST = "too_fast"
    GOOD_PACE = "good_pace"
    TOO_SLOW = "too_slow"


# UI strings live apart from the rating logic.
FORM_RATING_DISPLAY = {
    FormRating.PERFECT: "Perfect Form",
    FormRating.GOOD: "Good Form",
    FormRating.FAIR: "Fair Form",
    FormRating.NEEDS_WORK: "Needs Work",
    FormRating.POOR: "Poor Form",
}

SPEED_RATING_DISPLAY = {
    SpeedRating.TOO_FAST: "Too Fast",
    SpeedRating.GOOD_PACE: "Good Pace",
    SpeedRating.TOO_SLOW: "Too Slow",
}


@dataclass(frozen=True)
class RepFeedback:
    angle: float
    issues: Tuple[FormIssue, ...]
    form_rating: FormRating
    speed_rating: SpeedRating
    tip: str

    @property
    def issue_tags(self) -> List[str]:
        return [issue.tag for issue in self.issues]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "angle": round(self.angle, 1),
            "issues": self.issue_tags,
            "form_rating": self.form_rating.value,
            "form_rating_display": FORM_RATING_DISPLAY[self.form_rating],
            "speed_rating": self.speed_rating.value,
            "speed_rating_display": SPEED_RATING_DISPLAY[self.speed_rating],
            "tip": self.tip,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "RepFeedback":
        issues = tuple(FORM_ISSUES[tag] for tag in data.get("issues", []) if tag in FORM_ISSUES)
        return RepFeedback(
            angle=float(data["angle"]),
            issues=issues,
            form_rating=FormRating(data["form_rating"]),
            speed_rating=SpeedRating(data["speed_rating"]),
            tip=data.get("tip", DEFAULT_TIP),
        )


def rate_form(issues: Iterable[FormIssue]) -> FormRating:
    issues = list(issues)
    if not issues:
        return FormRating.PERFECT
    if any(i.severity == Severity.SEVERE for i in issues):
        return FormRating.POOR
    moderate = sum(1 for i in issues if i.severity == Severity.MODERATE)
    if moderate > 1:
        return FormRating.NEEDS_WORK
    if moderate == 1:
        return FormRating.FAIR
    return FormRating.GOOD


def rate_speed(duration_ms: float, tempo_ms: Tuple[int, int]) -> SpeedRating:
    lo, hi = tempo_ms
    if duration_ms < lo:
        return SpeedRating.TOO_FAST
    if duration_ms > hi:
        return SpeedRating.TOO_SLOW
    return SpeedRating.GOOD_PACE


def pick_tip(issues: Iterable[FormIssue]) -> str:
    issues = list(issues)
    if not issues:
        return DEFAULT_TIP
    worst = min(issues, key=lambda i: (-i.severity, CATALOG_ORDER[i.tag]))
    return worst.tip


class FormClassifier:
    """
    Rule-based rep classifier.

    Usage:
        classifier = FormClassifier()
        feedback = classifier.classify(ExerciseKind.SQUAT, 92.0, ["knees_inward"], 4100)
        # feedback.form_rating == FormRating.POOR
    """

    def __init__(self, exercises: Optional[Dict[ExerciseKind, ExerciseConfig]] = None):
        self.exercises = exercises or dict(EXERCISE_CONFIG)
        self.tag_map = RAW_TAG_MAP

    def identify_issues(self, exercise: ExerciseKind, tags: Iterable[str]) -> Tuple[FormIssue, ...]:
        """Map raw tags to unique Form Issues, in catalog order. Unknown tags are dropped."""
        mapping = self.tag_map.get(exercise, {})
        found = {mapping[t] for t in tags if t in mapping}
        return tuple(sorted((FORM_ISSUES[tag] for tag in found), key=lambda i: CATALOG_ORDER[i.tag]))

    def classify(
        self,
        exercise: ExerciseKind,
        angle: float,
        tags: Iterable[str],
        duration_ms: float,
    ) -> RepFeedback:
        issues = self.identify_issues(exercise, tags)
        return RepFeedback(
            angle=float(angle),
            issues=issues,
            form_rating=rate_form(issues),
            speed_rating=rate_speed(duration_ms, self.exercises[exercise].tempo_ms),
            tip=pick_tip(issues),
        )
