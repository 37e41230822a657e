"""
network.py
~~~~~~~~~~

Feed-forward neural network built from dense layers.

Usage::

    net = Network([
        LayerSpec(784, 'ReLU'),
        LayerSpec(64, 'ReLU'),
        LayerSpec(10, 'Softmax'),
    ])
    net.set_input_signals(pixels).forward().backward(one_hot, 0.01)
    prediction = net.output_values

The first layer's neurons read directly from ``input_signals``, so the input
vector length equals the first layer's neuron count.

Training is plain single-example gradient descent: every ``backward`` call
updates the weights from one sample.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np

from neuro import initializers
from neuro.activation import ActivationFunction, Sigmoid, Softmax, resolve_activation
from neuro.errors import (
    EmptyNetworkError,
    InvalidModelError,
    ShapeMismatchError,
    UnsupportedCombinationError,
)
from neuro.layer import Layer
from neuro.loss import CrossEntropy, LossFunction, MSE, resolve_loss
from neuro.neuron import Signal
from neuro.rounding import from_fixed_point, to_fixed_point

logger = logging.getLogger(__name__)

DEFAULT_PRECISION = 6
BIAS_INIT_RANGE = (0.0, 0.05)


@dataclass(frozen=True)
class LayerSpec:
    """Neuron count and activation (instance or name) for one layer."""

    neurons: int
    activation: Union[str, ActivationFunction] = 'ReLU'

    @classmethod
    def coerce(cls, value: Any) -> 'LayerSpec':
        """Build a LayerSpec from a spec, a ``{'neurons', 'activation'}`` dict or a tuple."""
        if isinstance(value, cls):
            return value
        if isinstance(value, dict):
            return cls(value['neurons'], value.get('activation', 'ReLU'))
        return cls(*value)


class Network:
    """
    Stack of fully connected layers plus the loss function used to train them.

    Args:
        layer_specs: One entry per layer, first to last
        loss_function: Explicit loss (instance or name). Defaults to
            CrossEntropy for a Softmax output layer, MSE otherwise.
        rng: Random generator used for weight initialization

    Raises:
        EmptyNetworkError: If ``layer_specs`` is empty
        UnknownFunctionError: If an activation or loss name is unknown
        UnsupportedCombinationError: If a Softmax output layer is paired
            with a loss other than CrossEntropy
    """

    def __init__(
        self,
        layer_specs: Sequence[Any],
        loss_function: Union[str, LossFunction, None] = None,
        rng: Optional[np.random.Generator] = None
    ):
        specs = [LayerSpec.coerce(spec) for spec in layer_specs]
        if not specs:
            raise EmptyNetworkError("A network must contain at least one layer")

        self.layers: List[Layer] = [
            Layer(spec.neurons, resolve_activation(spec.activation))
            for spec in specs
        ]
        self.loss_function = self._select_loss_function(loss_function)
        self.input_signals: List[Signal] = []

        self._init_inputs()
        self._init_weights_and_biases(rng)

        logger.debug(
            f"Created network {self.sizes} with activations "
            f"{self.activation_names}, loss={self.loss_function.name}"
        )

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def _select_loss_function(self, loss_function) -> LossFunction:
        output_activation = self.layers[-1].activation_function

        if loss_function is None:
            return CrossEntropy if output_activation is Softmax else MSE

        loss = resolve_loss(loss_function)
        if output_activation is Softmax and loss is not CrossEntropy:
            raise UnsupportedCombinationError(
                f"A Softmax output layer requires CrossEntropy loss, got {loss.name}"
            )
        return loss

    def _init_inputs(self) -> None:
        first_layer = self.layers[0]
        self.input_signals = [Signal() for _ in range(len(first_layer))]
        for neuron in first_layer.neurons:
            neuron.add_inputs(self.input_signals)

        for previous_layer, layer in zip(self.layers, self.layers[1:]):
            layer.connect(previous_layer)

    def _init_weights_and_biases(self, rng: Optional[np.random.Generator]) -> None:
        last_index = len(self.layers) - 1

        for index, layer in enumerate(self.layers):
            fan_in = (len(self.input_signals) if index == 0
                      else len(self.layers[index - 1]))
            fan_out = (len(layer) if index == last_index
                       else len(self.layers[index + 1]))
            use_xavier = layer.activation_function is Sigmoid

            for neuron in layer.neurons:
                neuron.bias = initializers.random_uniform(*BIAS_INIT_RANGE, rng=rng)
                for connection in neuron.inputs:
                    if use_xavier:
                        connection.weight = initializers.random_uniform_xavier(
                            fan_in, fan_out, rng=rng
                        )
                    else:
                        connection.weight = initializers.random_normal_he(
                            fan_in, rng=rng
                        )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def sizes(self) -> List[int]:
        return [len(layer) for layer in self.layers]

    @property
    def activation_names(self) -> List[str]:
        return [layer.activation_function.name for layer in self.layers]

    @property
    def output_layer(self) -> Layer:
        return self.layers[-1]

    @property
    def output_signals(self) -> List[Signal]:
        return self.output_layer.output_signals

    @property
    def output_values(self) -> List[float]:
        return self.output_layer.output_values

    @property
    def parameter_count(self) -> int:
        return sum(
            len(neuron.inputs) + 1
            for layer in self.layers for neuron in layer.neurons
        )

    # ------------------------------------------------------------------
    # Propagation
    # ------------------------------------------------------------------

    def _check_length(self, values: Sequence[float], size: int, what: str) -> None:
        if len(values) != size:
            raise ShapeMismatchError(
                f"{what} length does not match the network", size, len(values)
            )

    def set_input_signals(self, values: Sequence[float]) -> 'Network':
        self._check_length(values, len(self.input_signals), "Input")
        for signal, value in zip(self.input_signals, values):
            signal.value = float(value)
        return self

    def forward(self) -> 'Network':
        for layer in self.layers:
            layer.forward()
        return self

    def backward(self, expected_output: Sequence[float],
                 learning_rate: float = 0.05) -> 'Network':
        """
        Backpropagate the error for one sample and apply gradient descent.

        Call after ``forward``. All deltas are computed before any weight is
        touched, so every gradient uses the weights and signal values of the
        forward pass that produced the outputs.
        """
        self._check_length(expected_output, len(self.output_layer),
                           "Expected output")

        deltas: List[np.ndarray] = [np.zeros(len(layer)) for layer in self.layers]

        # Output layer: dE/dz = dE/da * f'(z), or dE/dz directly for Softmax
        output_layer = self.output_layer
        gradient = self.loss_function.derivative(self.output_values, expected_output)
        if output_layer.activation_function is Softmax:
            deltas[-1] = gradient
        else:
            deltas[-1] = gradient * output_layer.activation_function.derivative(
                output_layer.pre_activations
            )

        # Hidden layers, back to front
        for index in range(len(self.layers) - 2, -1, -1):
            layer = self.layers[index]
            next_layer = self.layers[index + 1]
            next_deltas = deltas[index + 1]
            derivatives = layer.activation_function.derivative(layer.pre_activations)

            for j in range(len(layer)):
                error = sum(
                    next_neuron.inputs[j].weight * next_deltas[k]
                    for k, next_neuron in enumerate(next_layer.neurons)
                )
                deltas[index][j] = error * derivatives[j]

        for layer, layer_deltas in zip(self.layers, deltas):
            for neuron, delta in zip(layer.neurons, layer_deltas):
                step = learning_rate * float(delta)
                for connection in neuron.inputs:
                    connection.weight -= step * connection.signal.value
                neuron.bias -= step

        return self

    def calculate_loss(self, expected_output: Sequence[float]) -> float:
        self._check_length(expected_output, len(self.output_layer),
                           "Expected output")
        return self.loss_function.apply(self.output_values, expected_output)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_json(self, precision: int = DEFAULT_PRECISION) -> Dict[str, Any]:
        """
        Export architecture and parameters as a JSON-compatible dict.

        Biases and weights are stored as integers scaled by
        ``10**precision`` to keep documents compact.
        """
        return {
            'layers': [
                {
                    'neurons': [
                        {
                            'bias': to_fixed_point(neuron.bias, precision),
                            'weights': [
                                to_fixed_point(connection.weight, precision)
                                for connection in neuron.inputs
                            ],
                        }
                        for neuron in layer.neurons
                    ],
                    'activationFunction': layer.activation_function.name,
                }
                for layer in self.layers
            ],
            'lossFunction': self.loss_function.name,
        }

    @classmethod
    def from_json(
        cls,
        document: Dict[str, Any],
        precision: int = DEFAULT_PRECISION,
        rng: Optional[np.random.Generator] = None
    ) -> 'Network':
        """
        Rebuild a network from a ``to_json`` document.

        The network is fully constructed first (with random parameters) and
        only then are all biases and weights overwritten from the document.

        Raises:
            InvalidModelError: If ``layers`` is missing or malformed
            UnknownFunctionError: If an activation or loss name is unknown
            ShapeMismatchError: If a neuron's weight count disagrees with
                its fan-in
        """
        layers = document.get('layers') if isinstance(document, dict) else None
        if not isinstance(layers, list):
            raise InvalidModelError(
                "Invalid model document: 'layers' field is missing or not a list"
            )

        try:
            specs = [
                LayerSpec(len(layer['neurons']), layer.get('activationFunction'))
                for layer in layers
            ]
        except (KeyError, TypeError) as e:
            raise InvalidModelError(f"Invalid layer entry in model document: {e}") from e

        network = cls(specs, document.get('lossFunction'), rng=rng)

        for layer_doc, layer in zip(layers, network.layers):
            for neuron_doc, neuron in zip(layer_doc['neurons'], layer.neurons):
                try:
                    bias, weights = neuron_doc['bias'], list(neuron_doc['weights'])
                except (KeyError, TypeError) as e:
                    raise InvalidModelError(
                        f"Invalid neuron entry in model document: {e}"
                    ) from e
                network._check_length(weights, len(neuron.inputs), "Stored weight")
                neuron.bias = from_fixed_point(bias, precision)
                for connection, weight in zip(neuron.inputs, weights):
                    connection.weight = from_fixed_point(weight, precision)

        logger.debug(f"Loaded network {network.sizes} from model document")
        return network

    def __repr__(self) -> str:
        return (
            f"Network(sizes={self.sizes}, activations={self.activation_names}, "
            f"loss={self.loss_function.name})"
        )
