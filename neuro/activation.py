"""
activation.py
~~~~~~~~~~~~~

Activation functions applied to a whole layer's pre-activation vector.

Each function is a stateless singleton exposing ``apply``, ``derivative`` and
the ``name`` used in serialized models. Functions operate on the full vector
rather than per neuron because Softmax normalizes across the layer.
"""

from typing import Dict, List, Sequence

import numpy as np

from neuro.errors import UnknownFunctionError


class ActivationFunction:
    """Base class for layer activation functions."""

    name: str = ''

    def apply(self, values: Sequence[float]) -> np.ndarray:
        raise NotImplementedError

    def derivative(self, values: Sequence[float]) -> np.ndarray:
        raise NotImplementedError

    def __call__(self, values: Sequence[float]) -> np.ndarray:
        return self.apply(values)

    def __repr__(self) -> str:
        return f"<ActivationFunction {self.name}>"


class _ReLU(ActivationFunction):
    name = 'ReLU'

    def apply(self, values):
        x = np.asarray(values, dtype=float)
        return np.maximum(0.0, x)

    def derivative(self, values):
        x = np.asarray(values, dtype=float)
        return (x >= 0).astype(float)


class _LeakyReLU(ActivationFunction):
    name = 'LeakyReLU'
    slope = 0.01

    def apply(self, values):
        x = np.asarray(values, dtype=float)
        return np.where(x > 0, x, self.slope * x)

    def derivative(self, values):
        x = np.asarray(values, dtype=float)
        return np.where(x > 0, 1.0, self.slope)


class _Sigmoid(ActivationFunction):
    name = 'Sigmoid'

    def apply(self, values):
        x = np.asarray(values, dtype=float)
        with np.errstate(over='ignore'):
            return 1.0 / (1.0 + np.exp(-x))

    def derivative(self, values):
        s = self.apply(values)
        return s * (1.0 - s)


class _Softmax(ActivationFunction):
    """
    Softmax over the whole layer.

    ``derivative`` returns ones: the Jacobian is folded into the loss
    gradient by the Softmax + CrossEntropy shortcut in ``Network.backward``.
    """

    name = 'Softmax'

    def apply(self, values):
        x = np.asarray(values, dtype=float)
        if x.size == 0:
            return x
        exponentials = np.exp(x - np.max(x))
        return exponentials / exponentials.sum()

    def derivative(self, values):
        return np.ones(len(values), dtype=float)


ReLU = _ReLU()
LeakyReLU = _LeakyReLU()
Sigmoid = _Sigmoid()
Softmax = _Softmax()

_ACTIVATION_FUNCTIONS: Dict[str, ActivationFunction] = {
    fn.name: fn for fn in (ReLU, LeakyReLU, Sigmoid, Softmax)
}


def get_activation(name: str) -> ActivationFunction:
    """
    Look up an activation function by its serialized name.

    Raises:
        UnknownFunctionError: If ``name`` is not a known activation
    """
    try:
        return _ACTIVATION_FUNCTIONS[name]
    except (KeyError, TypeError):
        raise UnknownFunctionError('activation', name) from None


def resolve_activation(value) -> ActivationFunction:
    """Accept either an ActivationFunction instance or its name."""
    if isinstance(value, ActivationFunction):
        return value
    return get_activation(value)


def activation_names() -> List[str]:
    return list(_ACTIVATION_FUNCTIONS)


def all_activations() -> List[ActivationFunction]:
    return list(_ACTIVATION_FUNCTIONS.values())
