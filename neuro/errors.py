"""
errors.py
~~~~~~~~~

Exception hierarchy raised by the network engine.

Every error is raised synchronously to the immediate caller. The engine never
retries or recovers; callers decide whether to abort or skip.
"""


class NeuroError(Exception):
    """Base class for all engine errors."""


class EmptyNetworkError(NeuroError, ValueError):
    """Raised when a network is built from zero layer specs."""


class ShapeMismatchError(NeuroError, ValueError):
    """Raised when a vector length disagrees with the matching layer size."""

    def __init__(self, message: str, expected: int, actual: int):
        super().__init__(f"{message} (expected {expected}, got {actual})")
        self.expected = expected
        self.actual = actual


class UnknownFunctionError(NeuroError, LookupError):
    """Raised when an activation or loss function name is not recognized."""

    def __init__(self, kind: str, name):
        super().__init__(f"Unknown {kind} function: {name!r}")
        self.kind = kind
        self.name = name


class UnsupportedCombinationError(NeuroError, ValueError):
    """Raised when a Softmax output layer is paired with a loss other than CrossEntropy."""


class InvalidModelError(NeuroError, ValueError):
    """Raised when a serialized model document is structurally invalid."""
