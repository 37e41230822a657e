"""
loss.py
~~~~~~~

Loss functions comparing the output layer against an expected vector.
"""

from typing import Dict, List, Sequence

import numpy as np

from neuro.errors import ShapeMismatchError, UnknownFunctionError

# Keeps log() away from zero for saturated Softmax outputs
EPSILON = 1e-15


def _as_pair(predicted: Sequence[float], expected: Sequence[float]):
    p = np.asarray(predicted, dtype=float)
    e = np.asarray(expected, dtype=float)
    if p.shape != e.shape:
        raise ShapeMismatchError(
            "Predicted and expected vectors differ in length",
            expected=len(p), actual=len(e)
        )
    return p, e


class LossFunction:
    """Base class for loss functions."""

    name: str = ''

    def apply(self, predicted: Sequence[float], expected: Sequence[float]) -> float:
        raise NotImplementedError

    def derivative(self, predicted: Sequence[float],
                   expected: Sequence[float]) -> np.ndarray:
        raise NotImplementedError

    def __call__(self, predicted, expected) -> float:
        return self.apply(predicted, expected)

    def __repr__(self) -> str:
        return f"<LossFunction {self.name}>"


class _MSE(LossFunction):
    name = 'MSE'

    def apply(self, predicted, expected):
        p, e = _as_pair(predicted, expected)
        return float(np.sum(0.5 * (p - e) ** 2))

    def derivative(self, predicted, expected):
        p, e = _as_pair(predicted, expected)
        return p - e


class _CrossEntropy(LossFunction):
    """
    Categorical cross-entropy.

    ``derivative`` is the combined gradient through a Softmax output layer
    (``p - e``), not the raw ``-e / p`` derivative of cross-entropy alone.
    """

    name = 'CrossEntropy'

    def apply(self, predicted, expected):
        p, e = _as_pair(predicted, expected)
        return float(-np.sum(e * np.log(p + EPSILON)))

    def derivative(self, predicted, expected):
        p, e = _as_pair(predicted, expected)
        return p - e


MSE = _MSE()
CrossEntropy = _CrossEntropy()

_LOSS_FUNCTIONS: Dict[str, LossFunction] = {
    fn.name: fn for fn in (MSE, CrossEntropy)
}


def get_loss(name: str) -> LossFunction:
    """
    Look up a loss function by its serialized name.

    Raises:
        UnknownFunctionError: If ``name`` is not a known loss
    """
    try:
        return _LOSS_FUNCTIONS[name]
    except (KeyError, TypeError):
        raise UnknownFunctionError('loss', name) from None


def resolve_loss(value) -> LossFunction:
    """Accept either a LossFunction instance or its name."""
    if isinstance(value, LossFunction):
        return value
    return get_loss(value)


def loss_names() -> List[str]:
    return list(_LOSS_FUNCTIONS)


def all_losses() -> List[LossFunction]:
    return list(_LOSS_FUNCTIONS.values())
