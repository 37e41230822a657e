"""
layer.py
~~~~~~~~

A dense layer: neurons sharing one activation function.
"""

import numbers
from typing import List

from neuro.activation import ActivationFunction, ReLU
from neuro.neuron import Connection, Neuron, Signal


class Layer:
    def __init__(self, neuron_count: int,
                 activation_function: ActivationFunction = ReLU):
        if not isinstance(neuron_count, numbers.Integral) or neuron_count < 1:
            raise ValueError(
                f"A layer needs at least one neuron, got {neuron_count!r}"
            )
        self.activation_function = activation_function
        self.neurons: List[Neuron] = [Neuron() for _ in range(int(neuron_count))]

    def __len__(self) -> int:
        return len(self.neurons)

    @property
    def pre_activations(self) -> List[float]:
        return [neuron.pre_activation or 0.0 for neuron in self.neurons]

    @property
    def output_signals(self) -> List[Signal]:
        return [neuron.output for neuron in self.neurons]

    @property
    def output_values(self) -> List[float]:
        return [neuron.output.value for neuron in self.neurons]

    def forward(self) -> 'Layer':
        """Compute all pre-activations, then activate the vector as a whole."""
        for neuron in self.neurons:
            neuron.compute_pre_activation()

        activations = self.activation_function.apply(self.pre_activations)
        for neuron, value in zip(self.neurons, activations):
            neuron.set_output_value(float(value))
        return self

    def connect(self, previous_layer: 'Layer') -> 'Layer':
        """Fully connect every neuron to every output of ``previous_layer``."""
        for neuron in self.neurons:
            neuron.inputs = [
                Connection(signal) for signal in previous_layer.output_signals
            ]
        return self
