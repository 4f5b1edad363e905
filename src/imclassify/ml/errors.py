"""Error kinds raised by the classification pipeline."""

from __future__ import annotations


class ClassifierError(Exception):
    """Base class for all classifier errors."""


class ResourceNotFoundError(ClassifierError):
    """A model or label resource is missing or unreadable."""


class InvalidShapeError(ClassifierError):
    """A model declares an input shape that cannot be interpreted.

    The model loader recovers from this by falling back to a default size;
    it is never surfaced to callers.
    """


class UninitializedError(ClassifierError):
    """Classification was requested before a model was successfully loaded."""


class InferenceFailureError(ClassifierError):
    """The inference runtime failed to build a session or run the model."""


class ClassifierClosedError(ClassifierError):
    """An operation was requested after the classifier was closed."""
