"""Exception types raised by the formcoach analysis core."""


class FormCoachError(Exception):
    """Base class for every error raised by formcoach."""


class InvalidGeometryError(FormCoachError, ValueError):
    """A joint coordinate reaching the angle engine was NaN or infinite."""


class InsufficientLandmarksError(FormCoachError, ValueError):
    """A frame carried fewer joints than the selected exercise needs."""


class UnknownExerciseError(FormCoachError, KeyError):
    """An exercise name did not match any entry of the exercise catalog."""


class StoreError(FormCoachError):
    """A persistence collaborator failed to read or write."""
