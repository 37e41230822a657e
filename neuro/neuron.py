"""
neuron.py
~~~~~~~~~

Signals, weighted connections and neurons.

A ``Signal`` is written by exactly one producer (a neuron's output or an
external input slot) and read by every connection that references it, so a
value written during a forward pass is immediately visible downstream.
"""

from typing import Iterable, List, Optional


class Signal:
    """Mutable scalar shared between a producer and its consumers."""

    __slots__ = ('value',)

    def __init__(self, value: float = 0.0):
        self.value = value

    def __repr__(self) -> str:
        return f"Signal({self.value!r})"


class Connection:
    """A weighted reference to an upstream signal, owned by one neuron."""

    __slots__ = ('signal', 'weight')

    def __init__(self, signal: Signal, weight: float = 0.0):
        self.signal = signal
        self.weight = weight

    def __repr__(self) -> str:
        return f"Connection(weight={self.weight!r}, signal={self.signal!r})"


class Neuron:
    """
    A single unit of a dense layer.

    The neuron only computes its pre-activation; the owning layer applies
    the activation function across all of its neurons and writes the result
    back through ``set_output_value``.
    """

    def __init__(self, bias: float = 0.0):
        self.bias = bias
        self.inputs: List[Connection] = []
        self._pre_activation: Optional[float] = None
        self._output = Signal()

    @property
    def pre_activation(self) -> Optional[float]:
        """Weighted input sum plus bias from the last forward pass."""
        return self._pre_activation

    @property
    def output(self) -> Signal:
        return self._output

    @property
    def weights(self) -> List[float]:
        return [connection.weight for connection in self.inputs]

    def add_inputs(self, signals: Iterable[Signal]) -> 'Neuron':
        self.inputs.extend(Connection(signal) for signal in signals)
        return self

    def compute_pre_activation(self) -> float:
        # z = bias + sum(w_i * x_i)
        total = self.bias
        for connection in self.inputs:
            total += connection.weight * connection.signal.value
        self._pre_activation = total
        return total

    def set_output_value(self, value: float) -> None:
        self._output.value = value
