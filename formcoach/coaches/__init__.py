"""
formcoach coaching system

Two components:
1. FormClassifier - Maps analyzer tags, angle and tempo of a rep to RepFeedback
2. Feedback Generator - Builds the post-workout report from a session's feedback
"""

from .form_classifier import (
    FormClassifier,
    FormRating,
    RepFeedback,
    SpeedRating,
)
from .form_issues_config import FORM_ISSUES, FormIssue, Severity
from .feedback_generator import generate_workout_report

__all__ = [
    "FormClassifier",
    "FormRating",
    "RepFeedback",
    "SpeedRating",
    "FORM_ISSUES",
    "FormIssue",
    "Severity",
    "generate_workout_report",
]
