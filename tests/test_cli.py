"""
test_cli.py
~~~~~~~~~~~

Tests for the ``neuro`` command-line tool.
"""

import json
import os

import pytest
from click.testing import CliRunner

from neuro import __version__
from neuro.cli import cli
from neuro.model_persistence import load_model_file


@pytest.fixture
def runner():
    return CliRunner()


def train_args(folder, model, *extra):
    return ["train", "--folder", folder, "--model", model, *extra]


@pytest.mark.integration
class TestTrainCommand:
    def test_train_new_model(self, runner, digit_dataset, tmp_path):
        model = str(tmp_path / "model.json")

        result = runner.invoke(cli, train_args(
            digit_dataset, model, "--layers", "16,8,2", "--epochs", "2",
            "--speed", "0.05", "--seed", "1"
        ))

        assert result.exit_code == 0, result.output
        assert "New network created with layers [16,8,2]" in result.output
        assert "Found 6 images" in result.output
        assert "Epoch 2/2" in result.output
        assert "Training completed" in result.output
        assert load_model_file(model).sizes == [16, 8, 2]

    def test_continue_training_existing_model(self, runner, digit_dataset, model_file):
        with open(model_file, encoding='utf-8') as f:
            before = json.load(f)

        result = runner.invoke(cli, train_args(
            digit_dataset, model_file, "--epochs", "1", "--speed", "0.05"
        ))

        assert result.exit_code == 0, result.output
        assert "Existing model loaded" in result.output
        with open(model_file, encoding='utf-8') as f:
            assert json.load(f) != before

    def test_seeded_runs_are_reproducible(self, runner, digit_dataset, tmp_path):
        documents = []
        for name in ("a.json", "b.json"):
            model = str(tmp_path / name)
            result = runner.invoke(cli, train_args(
                digit_dataset, model, "--layers", "16,4,2", "--epochs", "1",
                "--seed", "7"
            ))
            assert result.exit_code == 0, result.output
            documents.append(load_model_file(model).to_json())

        assert documents[0] == documents[1]

    def test_custom_activations(self, runner, digit_dataset, tmp_path):
        model = str(tmp_path / "model.json")
        result = runner.invoke(cli, train_args(
            digit_dataset, model, "--layers", "16,2", "--activations",
            "LeakyReLU,Sigmoid", "--loss", "MSE", "--epochs", "1"
        ))

        assert result.exit_code == 0, result.output
        network = load_model_file(model)
        assert network.activation_names == ['LeakyReLU', 'Sigmoid']
        assert network.loss_function.name == 'MSE'

    @pytest.mark.parametrize("extra", [
        ["--layers", "16,x"],
        ["--layers", "16,2", "--activations", "ReLU"],
        ["--layers", "16,2", "--activations", "ReLU,Tanh"],
        ["--layers", "16,2", "--loss", "MSE"],
    ])
    def test_invalid_network_options(self, runner, digit_dataset, tmp_path, extra):
        result = runner.invoke(cli, train_args(
            digit_dataset, str(tmp_path / "model.json"), *extra
        ))
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_missing_model_without_layers(self, runner, digit_dataset, tmp_path):
        result = runner.invoke(cli, train_args(digit_dataset, str(tmp_path / "none.json")))
        assert result.exit_code == 1
        assert "Could not load model" in result.output

    def test_input_size_mismatch(self, runner, digit_dataset, tmp_path):
        result = runner.invoke(cli, train_args(
            digit_dataset, str(tmp_path / "model.json"), "--layers", "4,2"
        ))
        assert result.exit_code == 1
        assert "Training failed" in result.output

    def test_diverged_weights_keep_last_checkpoint(self, runner, digit_dataset,
                                                   model_file, monkeypatch):
        def diverge(network, samples, epochs, speed, callback=None, rng=None):
            network.layers[1].neurons[0].inputs[0].weight = float('nan')
            callback({'epoch': 1, 'total_epochs': epochs, 'loss': 0.0, 'accuracy': 0.0})

        monkeypatch.setattr('neuro.cli.train', diverge)
        with open(model_file, encoding='utf-8') as f:
            before = f.read()

        result = runner.invoke(cli, train_args(digit_dataset, model_file, "--epochs", "1"))

        assert result.exit_code == 1
        assert "Training failed" in result.output
        assert "non-finite" in result.output
        with open(model_file, encoding='utf-8') as f:
            assert f.read() == before

    def test_empty_dataset(self, runner, tmp_path):
        empty = tmp_path / "empty"
        empty.mkdir()
        result = runner.invoke(cli, train_args(
            str(empty), str(tmp_path / "model.json"), "--layers", "16,2"
        ))
        assert result.exit_code == 1
        assert "No images found" in result.output

    def test_invalid_epochs(self, runner, digit_dataset, tmp_path):
        result = runner.invoke(cli, train_args(
            digit_dataset, str(tmp_path / "model.json"), "--layers", "16,2",
            "--epochs", "0"
        ))
        assert result.exit_code == 2


@pytest.mark.integration
class TestRecognizeCommand:
    def test_recognize(self, runner, digit_dataset, model_file):
        result = runner.invoke(cli, ["recognize", "--folder", digit_dataset,
                                     "--model", model_file])

        assert result.exit_code == 0, result.output
        assert "Layers: 3" in result.output
        assert "Found 6 images" in result.output
        assert "Correct answers:" in result.output
        assert "/6" in result.output

    def test_recognize_details(self, runner, digit_dataset, model_file):
        result = runner.invoke(cli, ["recognize", "--folder", digit_dataset,
                                     "--model", model_file, "--details"])

        assert result.exit_code == 0, result.output
        assert result.output.count("expected ") == 6

    def test_invalid_model_file(self, runner, digit_dataset, tmp_path):
        broken = tmp_path / "broken.json"
        broken.write_text('{"layers": 5}')

        result = runner.invoke(cli, ["recognize", "--folder", digit_dataset,
                                     "--model", str(broken)])
        assert result.exit_code == 1
        assert "Could not load model" in result.output


@pytest.mark.unit
class TestInfoCommand:
    def test_info(self, runner, model_file):
        result = runner.invoke(cli, ["info", "--model", model_file])

        assert result.exit_code == 0, result.output
        assert "Loss function: CrossEntropy" in result.output
        assert "Layer 1: 16 neurons, ReLU" in result.output
        assert "Layer 3: 2 neurons, Softmax" in result.output

    def test_missing_model(self, runner, tmp_path):
        result = runner.invoke(cli, ["info", "--model", os.path.join(str(tmp_path), "x.json")])
        assert result.exit_code == 2

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output
