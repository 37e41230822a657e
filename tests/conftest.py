"""
conftest.py
~~~~~~~~~~~

Shared fixtures for the test suite.
"""

import os

import numpy as np
import pytest
import matplotlib
matplotlib.use('Agg')
import matplotlib.image as mpimg

from neuro.network import LayerSpec, Network

IMAGE_SIZE = 4


def set_parameters(network, weight, bias):
    """Overwrite every weight and bias of ``network`` with constants."""
    for layer in network.layers:
        for neuron in layer.neurons:
            neuron.bias = bias
            for connection in neuron.inputs:
                connection.weight = weight
    return network


def digit_image(label):
    """4x4 image: label 0 lights the top half, label 1 the bottom half."""
    image = np.zeros((IMAGE_SIZE, IMAGE_SIZE))
    if label == 0:
        image[:IMAGE_SIZE // 2, :] = 1.0
    else:
        image[IMAGE_SIZE // 2:, :] = 1.0
    return image


@pytest.fixture
def temp_db_dir(tmp_path):
    """Create a temporary directory for database storage."""
    db_dir = tmp_path / "test_models"
    db_dir.mkdir()
    return str(db_dir)


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def simple_network(rng):
    """Create a simple 3-layer network for testing."""
    return Network(
        [LayerSpec(3, 'ReLU'), LayerSpec(4, 'Sigmoid'), LayerSpec(2, 'Softmax')],
        rng=rng
    )


@pytest.fixture
def trained_network(simple_network):
    """Create a simple network with some training applied."""
    for i in range(10):
        expected = [1.0, 0.0] if i % 2 else [0.0, 1.0]
        simple_network.set_input_signals([0.1 * i, 0.5, 1.0 - 0.1 * i])
        simple_network.forward().backward(expected, 0.1)
    return simple_network


@pytest.fixture
def digit_dataset(tmp_path):
    """
    Write a tiny two-class PNG dataset laid out as ``<root>/<label>/*.png``.

    Returns the dataset root as a string.
    """
    root = tmp_path / "digits"
    for label in (0, 1):
        label_dir = root / str(label)
        label_dir.mkdir(parents=True)
        for index in range(3):
            mpimg.imsave(
                str(label_dir / f"img_{index}.png"),
                digit_image(label),
                cmap='gray', vmin=0.0, vmax=1.0
            )
    # Ignored by the loader
    (root / "notes").mkdir()
    (root / "0" / "readme.txt").write_text("not an image")
    return str(root)


@pytest.fixture
def digit_samples():
    return [(label, digit_image(label)) for label in (0, 1) for _ in range(3)]


@pytest.fixture
def small_digit_network(rng):
    """Network sized for the 4x4 digit fixtures."""
    return Network(
        [LayerSpec(IMAGE_SIZE * IMAGE_SIZE, 'ReLU'), LayerSpec(8, 'ReLU'),
         LayerSpec(2, 'Softmax')],
        rng=rng
    )


@pytest.fixture
def model_file(tmp_path, small_digit_network):
    from neuro.model_persistence import save_model_file

    path = os.path.join(str(tmp_path), "model.json")
    save_model_file(small_digit_network, path)
    return path
