"""
neuro package
~~~~~~~~~~~~~

Feed-forward neural network library for handwritten digit recognition.
Contains the network engine (layers, activations, losses, backpropagation,
JSON model documents), image loading, training and recognition helpers,
model persistence, a command-line tool and an API server.
"""

__version__ = "1.0.0"

from neuro.errors import (  # noqa: E402
    EmptyNetworkError,
    InvalidModelError,
    NeuroError,
    ShapeMismatchError,
    UnknownFunctionError,
    UnsupportedCombinationError,
)
from neuro.network import LayerSpec, Network  # noqa: E402

__all__ = [
    'EmptyNetworkError',
    'InvalidModelError',
    'LayerSpec',
    'Network',
    'NeuroError',
    'ShapeMismatchError',
    'UnknownFunctionError',
    'UnsupportedCombinationError',
]
