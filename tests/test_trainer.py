"""
test_trainer.py
~~~~~~~~~~~~~~~

Tests for building, training and evaluating digit networks.
"""

import numpy as np
import pytest

from neuro.errors import UnknownFunctionError, UnsupportedCombinationError
from neuro.loss import CrossEntropy, MSE
from neuro.recognizer import (
    RecognitionResult,
    recognize_batch,
    recognize_image,
    recognize_vector,
)
from neuro.trainer import (
    EpochStats,
    create_network,
    describe_model,
    evaluate,
    parse_layers,
    shuffle_data,
    train,
)

from conftest import digit_image, set_parameters


@pytest.mark.unit
class TestCreateNetwork:
    def test_parse_layers(self):
        assert parse_layers("784, 64,10") == [784, 64, 10]

    @pytest.mark.parametrize("config", ["", "10,x", "10,0", "-3"])
    def test_parse_layers_invalid(self, config):
        with pytest.raises(ValueError):
            parse_layers(config)

    def test_default_activations(self):
        network = create_network("4,3,2")

        assert network.sizes == [4, 3, 2]
        assert network.activation_names == ['ReLU', 'ReLU', 'Softmax']
        assert network.loss_function is CrossEntropy

    def test_explicit_activations_and_loss(self):
        network = create_network("4,2", "LeakyReLU,Sigmoid", "MSE")
        assert network.activation_names == ['LeakyReLU', 'Sigmoid']
        assert network.loss_function is MSE

    def test_activation_count_mismatch(self):
        with pytest.raises(ValueError):
            create_network("4,3,2", "ReLU,Softmax")

    def test_unknown_activation(self):
        with pytest.raises(UnknownFunctionError):
            create_network("4,2", "ReLU,Tanh")

    def test_softmax_with_mse(self):
        with pytest.raises(UnsupportedCombinationError):
            create_network("4,2", loss="MSE")

    def test_describe_model(self):
        description = describe_model(create_network("3,2"))
        assert description == {
            'layers': [
                {'neurons': 3, 'activation': 'ReLU'},
                {'neurons': 2, 'activation': 'Softmax'},
            ],
            'loss_function': 'CrossEntropy',
            'parameters': 3 * 4 + 2 * 4,
        }


@pytest.mark.unit
class TestShuffle:
    def test_is_a_permutation(self, rng):
        data = list(range(20))
        shuffled = shuffle_data(data, rng=rng)

        assert sorted(shuffled) == data
        assert data == list(range(20))

    def test_seeded_shuffle_is_reproducible(self):
        data = list(range(20))
        first = shuffle_data(data, rng=np.random.default_rng(5))
        second = shuffle_data(data, rng=np.random.default_rng(5))
        assert first == second

    def test_short_inputs(self):
        assert shuffle_data([]) == []
        assert shuffle_data([7]) == [7]


@pytest.mark.unit
class TestRecognizer:
    def test_recognize_vector_picks_argmax(self):
        network = create_network("2,3")
        set_parameters(network, weight=0.0, bias=0.0)
        network.layers[1].neurons[2].bias = 5.0

        recognition = recognize_vector(network, [0.3, 0.7])

        assert recognition.index == 2
        assert recognition.confidence == max(recognition.probabilities)
        assert sum(recognition.probabilities) == pytest.approx(1.0)

    def test_recognize_image_flattens(self, small_digit_network):
        recognition = recognize_image(small_digit_network, digit_image(0))
        assert len(recognition.probabilities) == 2

    def test_success_rate(self):
        assert RecognitionResult().success_rate == 0.0
        assert RecognitionResult(3, 4).success_rate == 0.75

    def test_recognize_batch_details(self, small_digit_network, digit_samples):
        result = recognize_batch(small_digit_network, digit_samples)

        assert result.total_images == len(digit_samples)
        assert result.correct_answers == sum(d['correct'] for d in result.details)
        assert [d['expected'] for d in result.details] == [0, 0, 0, 1, 1, 1]


@pytest.mark.integration
class TestTraining:
    def test_learns_digit_fixtures(self, small_digit_network, digit_samples, rng):
        history = train(small_digit_network, digit_samples, epochs=30,
                        learning_rate=0.05, rng=rng)

        assert len(history) == 30
        assert history[-1].loss < history[0].loss
        assert evaluate(small_digit_network, digit_samples) == len(digit_samples)
        assert recognize_batch(small_digit_network, digit_samples).success_rate == 1.0

    def test_callback_receives_epoch_stats(self, small_digit_network, digit_samples, rng):
        received = []
        history = train(small_digit_network, digit_samples, epochs=2,
                        learning_rate=0.05, callback=received.append, rng=rng)

        assert [stats['epoch'] for stats in received] == [1, 2]
        assert received[0]['total_epochs'] == 2
        assert received[0]['total'] == len(digit_samples)
        assert isinstance(history[0], EpochStats)
        assert received[1]['elapsed_time'] >= received[0]['elapsed_time']

    def test_yield_func_called_per_sample(self, small_digit_network, digit_samples, rng):
        calls = []
        train(small_digit_network, digit_samples, epochs=2, learning_rate=0.05,
              yield_func=lambda: calls.append(1), rng=rng)
        assert len(calls) == 2 * len(digit_samples)

    def test_accuracy_on_test_data(self, small_digit_network, digit_samples, rng):
        test_data = digit_samples[:2]
        history = train(small_digit_network, digit_samples, epochs=1,
                        learning_rate=0.05, test_data=test_data, rng=rng)

        assert history[0].total == 2
        assert history[0].correct == evaluate(small_digit_network, test_data)

    def test_invalid_arguments(self, small_digit_network, digit_samples):
        with pytest.raises(ValueError):
            train(small_digit_network, digit_samples, epochs=0, learning_rate=0.1)
        with pytest.raises(ValueError):
            train(small_digit_network, [], epochs=1, learning_rate=0.1)
