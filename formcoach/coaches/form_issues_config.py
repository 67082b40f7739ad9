"""
Form Issue Catalog

Form Issues are exercise-specific technique defects. Each one has a fixed
severity and a fixed corrective tip. The external posture analyzer reports raw
anomaly tags; RAW_TAG_MAP turns those tags into Form Issues per exercise.
Tags missing from the map are ignored.
"""

from enum import IntEnum
from typing import Dict, NamedTuple

from ..exercises import ExerciseKind


class Severity(IntEnum):
    MINOR = 1
    MODERATE = 2
    SEVERE = 3


class FormIssue(NamedTuple):
    tag: str
    description: str
    severity: Severity
    tip: str


# Catalog order is the tie-break order for tips.
FORM_ISSUES: Dict[str, FormIssue] = {
    issue.tag: issue
    for issue in [
        # Bicep curl
        FormIssue("ELBOW_SWINGING", "Elbow swinging during curl", Severity.MODERATE,
                  "Keep your elbows fixed to your sides"),
        FormIssue("WRIST_ROTATION", "Excessive wrist rotation", Severity.MINOR,
                  "Keep wrists neutral throughout movement"),
        FormIssue("SHOULDER_RAISING", "Raising shoulders during curl", Severity.MODERATE,
                  "Keep shoulders down and back"),
        FormIssue("BACK_ARCHING", "Arching back during curl", Severity.SEVERE,
                  "Maintain neutral spine, avoid leaning back"),
        # Squat
        FormIssue("KNEE_INWARD", "Knees caving inward", Severity.SEVERE,
                  "Push knees outward in line with toes"),
        FormIssue("KNEES_OVER_TOES", "Knees extending past toes", Severity.MODERATE,
                  "Shift weight to heels, knees behind toes"),
        FormIssue("SHALLOW_DEPTH", "Not reaching proper squat depth", Severity.MINOR,
                  "Lower until thighs are parallel to ground"),
        FormIssue("LEANING_FORWARD", "Excessive forward lean", Severity.MODERATE,
                  "Keep chest up, maintain upright torso"),
        FormIssue("HEELS_RISING", "Heels coming off the ground", Severity.MODERATE,
                  "Keep weight on heels, whole foot should stay grounded"),
        # Lateral raise
        FormIssue("SHRUGGING", "Shrugging shoulders during raise", Severity.MODERATE,
                  "Keep shoulders relaxed and down"),
        FormIssue("ELBOW_BENDING", "Excessive elbow bending", Severity.MINOR,
                  "Maintain slight elbow bend throughout"),
        FormIssue("RAISING_TOO_HIGH", "Raising arms too high", Severity.MINOR,
                  "Raise arms to shoulder level, not higher"),
        FormIssue("ASYMMETRIC_MOVEMENT", "Uneven arm movement", Severity.MODERATE,
                  "Keep both arms moving at the same height"),
        # Lunge
        FormIssue("FRONT_KNEE_ALIGNMENT", "Front knee not aligned with ankle", Severity.SEVERE,
                  "Keep front knee directly above ankle"),
        FormIssue("BACK_KNEE_DROP", "Back knee dropping too low", Severity.MODERATE,
                  "Back knee should hover just above ground"),
        FormIssue("TORSO_LEANING", "Leaning torso too far forward", Severity.MODERATE,
                  "Keep torso upright, shoulders back"),
        FormIssue("UNEVEN_WEIGHT", "Uneven weight distribution", Severity.MODERATE,
                  "Weight should be evenly distributed"),
        # Shoulder press
        FormIssue("BACK_OVERARCHING", "Overarching back", Severity.SEVERE,
                  "Engage core to maintain neutral spine"),
        FormIssue("ELBOWS_SPLAYING", "Elbows splaying outward", Severity.MODERATE,
                  "Keep elbows pointing forward"),
        FormIssue("INCOMPLETE_EXTENSION", "Incomplete arm extension", Severity.MINOR,
                  "Fully extend arms at top of movement"),
        FormIssue("FORWARD_HEAD", "Head pushing forward", Severity.MODERATE,
                  "Keep head in neutral position, chin tucked"),
    ]
}

CATALOG_ORDER: Dict[str, int] = {tag: i for i, tag in enumerate(FORM_ISSUES)}

RAW_TAG_MAP: Dict[ExerciseKind, Dict[str, str]] = {
    ExerciseKind.BICEP_CURL: {
        "elbow_away_from_body": "ELBOW_SWINGING",
        "back_arching": "BACK_ARCHING",
        "shoulder_raised": "SHOULDER_RAISING",
        "wrist_rotation": "WRIST_ROTATION",
    },
    ExerciseKind.SQUAT: {
        "knees_over_toes": "KNEES_OVER_TOES",
        "knees_inward": "KNEE_INWARD",
        "shallow_depth": "SHALLOW_DEPTH",
        "leaning_forward": "LEANING_FORWARD",
        "heels_rising": "HEELS_RISING",
    },
    ExerciseKind.LATERAL_RAISE: {
        "shoulder_shrugging": "SHRUGGING",
        "elbows_too_bent": "ELBOW_BENDING",
        "asymmetric_movement": "ASYMMETRIC_MOVEMENT",
        "arms_too_high": "RAISING_TOO_HIGH",
    },
    ExerciseKind.LUNGE: {
        "knees_over_toes": "FRONT_KNEE_ALIGNMENT",
        "back_knee_drop": "BACK_KNEE_DROP",
        "torso_leaning": "TORSO_LEANING",
        "uneven_weight": "UNEVEN_WEIGHT",
    },
    ExerciseKind.SHOULDER_PRESS: {
        "back_arching": "BACK_OVERARCHING",
        "elbows_splayed": "ELBOWS_SPLAYING",
        "incomplete_extension": "INCOMPLETE_EXTENSION",
        "forward_head": "FORWARD_HEAD",
    },
}
