"""
test_activation.py
~~~~~~~~~~~~~~~~~~

Unit tests for activation functions.
"""

import math

import numpy as np
import pytest

from neuro.activation import (
    LeakyReLU,
    ReLU,
    Sigmoid,
    Softmax,
    activation_names,
    all_activations,
    get_activation,
    resolve_activation,
)
from neuro.errors import UnknownFunctionError

VALUES = [-2, -1, 0, 1, 2]


@pytest.mark.unit
class TestActivationFunctions:
    """Test each activation and its derivative."""

    @pytest.mark.parametrize("fn", all_activations(), ids=lambda fn: fn.name)
    def test_output_lengths_match_input(self, fn):
        """Test that apply and derivative preserve the vector length."""
        for values in ([], [0.5], VALUES, list(range(17))):
            assert len(fn.apply(values)) == len(values)
            assert len(fn.derivative(values)) == len(values)

    def test_relu(self):
        assert ReLU.apply(VALUES).tolist() == [0, 0, 0, 1, 2]
        assert ReLU.derivative(VALUES).tolist() == [0, 0, 1, 1, 1]

    def test_leaky_relu(self):
        assert np.allclose(LeakyReLU.apply(VALUES), [-0.02, -0.01, 0, 1, 2])
        assert np.allclose(LeakyReLU.derivative(VALUES), [0.01, 0.01, 0.01, 1, 1])

    def test_sigmoid(self):
        outputs = Sigmoid.apply([0, 2, -2])
        assert outputs[0] == pytest.approx(0.5)
        assert outputs[1] == pytest.approx(1 / (1 + math.exp(-2)))
        assert outputs[1] + outputs[2] == pytest.approx(1.0)

    def test_sigmoid_derivative(self):
        s = 1 / (1 + math.exp(-1.5))
        assert Sigmoid.derivative([0])[0] == pytest.approx(0.25)
        assert Sigmoid.derivative([1.5])[0] == pytest.approx(s * (1 - s))

    def test_sigmoid_handles_large_negative_inputs(self):
        outputs = Sigmoid.apply([-1000.0, 1000.0])
        assert outputs.tolist() == [0.0, 1.0]

    def test_softmax_sums_to_one(self):
        outputs = Softmax.apply([1.0, 2.0, 3.0])
        assert np.all(outputs > 0)
        assert outputs.sum() == pytest.approx(1.0, abs=1e-5)
        assert outputs[2] > outputs[1] > outputs[0]

    def test_softmax_is_numerically_stable(self):
        """Test that large inputs do not overflow."""
        for values in ([100, 101, 102], [1000, 1001, 1002], [-1000, 0, 1000]):
            outputs = Softmax.apply(values)
            assert np.all(np.isfinite(outputs))
            assert np.all(outputs >= 0)
            assert outputs.sum() == pytest.approx(1.0, abs=1e-5)

        assert np.all(Softmax.apply([100, 101, 102]) > 0)

    def test_softmax_derivative_is_neutral(self):
        assert Softmax.derivative([3.0, -1.0, 0.5]).tolist() == [1.0, 1.0, 1.0]

    def test_callable(self):
        assert ReLU([-1, 1]).tolist() == [0, 1]


@pytest.mark.unit
class TestActivationLookup:
    """Test name-based lookup used by model documents."""

    @pytest.mark.parametrize("name", ["ReLU", "LeakyReLU", "Sigmoid", "Softmax"])
    def test_get_by_name(self, name):
        fn = get_activation(name)
        assert fn.name == name
        assert fn is get_activation(name)

    def test_names(self):
        assert activation_names() == ["ReLU", "LeakyReLU", "Sigmoid", "Softmax"]

    def test_unknown_name(self):
        with pytest.raises(UnknownFunctionError) as exc_info:
            get_activation("InvalidFunc")
        assert "InvalidFunc" in str(exc_info.value)
        assert exc_info.value.kind == 'activation'

    def test_unhashable_name(self):
        with pytest.raises(UnknownFunctionError):
            get_activation(["ReLU"])

    def test_resolve_accepts_instance_or_name(self):
        assert resolve_activation(Sigmoid) is Sigmoid
        assert resolve_activation("Sigmoid") is Sigmoid
