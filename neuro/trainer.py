"""
trainer.py
~~~~~~~~~~

Building networks from command-line style strings and training them on
labelled image samples.
"""

import time
import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

import numpy as np

from neuro import initializers
from neuro.activation import get_activation
from neuro.image_processor import Sample, create_expected_output, flatten_image
from neuro.network import LayerSpec, Network

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class EpochStats:
    epoch: int
    total_epochs: int
    loss: float
    accuracy: float
    correct: int
    total: int
    elapsed_time: float


def parse_layers(layers_config: str) -> List[int]:
    """Parse ``"784,64,10"`` into ``[784, 64, 10]``."""
    try:
        sizes = [int(part.strip()) for part in layers_config.split(',')]
    except ValueError:
        raise ValueError(f"Invalid layer sizes: {layers_config!r}") from None
    if any(size < 1 for size in sizes):
        raise ValueError(f"Layer sizes must be positive: {layers_config!r}")
    return sizes


def create_network(
    layers_config: str,
    activations_config: Optional[str] = None,
    loss: Optional[str] = None,
    rng: Optional[np.random.Generator] = None
) -> Network:
    """
    Create a network from comma-separated layer sizes and activation names.

    Without ``activations_config`` every layer uses ReLU except the last,
    which uses Softmax. The loss is chosen automatically unless given.
    """
    sizes = parse_layers(layers_config)

    if activations_config:
        names = [name.strip() for name in activations_config.split(',')]
        if len(names) != len(sizes):
            raise ValueError(
                f"Got {len(names)} activation(s) for {len(sizes)} layer(s)"
            )
    else:
        names = ['ReLU'] * (len(sizes) - 1) + ['Softmax']

    specs = [LayerSpec(size, get_activation(name)) for size, name in zip(sizes, names)]
    return Network(specs, loss, rng=rng)


def shuffle_data(data: Sequence[T], rng: Optional[np.random.Generator] = None) -> List[T]:
    """Return a shuffled copy of ``data`` (Fisher-Yates)."""
    shuffled = list(data)
    for i in range(len(shuffled) - 1, 0, -1):
        j = initializers.random_int(0, i, rng=rng)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def evaluate(network: Network, samples: Sequence[Sample]) -> int:
    """Return the number of samples whose arg-max output matches the label."""
    correct = 0
    for label, image in samples:
        outputs = network.set_input_signals(flatten_image(image)).forward().output_values
        if int(np.argmax(outputs)) == label:
            correct += 1
    return correct


def train(
    network: Network,
    samples: Sequence[Sample],
    epochs: int,
    learning_rate: float,
    test_data: Optional[Sequence[Sample]] = None,
    callback: Optional[Callable[[Dict[str, Any]], None]] = None,
    yield_func: Optional[Callable[[], None]] = None,
    rng: Optional[np.random.Generator] = None
) -> List[EpochStats]:
    """
    Train ``network`` with single-sample gradient descent.

    Args:
        network: Network to train in place
        samples: ``(label, image)`` training pairs
        epochs: Number of passes over ``samples``
        learning_rate: Gradient descent step size
        test_data: If given, per-epoch accuracy is measured on it instead
            of on the training predictions
        callback: Called after each epoch with the epoch statistics dict
        yield_func: Called after each sample so a cooperative scheduler
            can serve other work
        rng: Random generator used for shuffling

    Returns:
        Statistics for every epoch
    """
    if epochs < 1:
        raise ValueError(f"epochs must be a positive integer, got {epochs}")
    if not samples:
        raise ValueError("No training samples")

    num_classes = len(network.output_layer)
    history: List[EpochStats] = []
    start = time.time()

    for epoch in range(1, epochs + 1):
        total_loss = 0.0
        correct = 0

        for label, image in shuffle_data(samples, rng=rng):
            expected = create_expected_output(label, num_classes)
            network.set_input_signals(flatten_image(image)).forward()

            total_loss += network.calculate_loss(expected)
            if int(np.argmax(network.output_values)) == label:
                correct += 1

            network.backward(expected, learning_rate)

            if yield_func:
                yield_func()

        if test_data:
            correct = evaluate(network, test_data)
            total = len(test_data)
        else:
            total = len(samples)

        stats = EpochStats(
            epoch=epoch,
            total_epochs=epochs,
            loss=total_loss / len(samples),
            accuracy=correct / total,
            correct=correct,
            total=total,
            elapsed_time=time.time() - start
        )
        history.append(stats)

        logger.info(
            f"Epoch {epoch}/{epochs}: loss={stats.loss:.4f}, "
            f"accuracy={stats.accuracy:.2%} ({correct}/{total})"
        )

        if callback:
            callback(asdict(stats))

    return history


def describe_model(network: Network) -> Dict[str, Any]:
    return {
        'layers': [
            {'neurons': len(layer), 'activation': layer.activation_function.name}
            for layer in network.layers
        ],
        'loss_function': network.loss_function.name,
        'parameters': network.parameter_count
    }
