"""
cli.py
~~~~~~

Command-line trainer and recognizer for handwritten-digit datasets.

Examples::

    neuro train --folder dataset/train --model model.json --layers 784,64,10
    neuro train --folder dataset/train --model model.json --epochs 5
    neuro recognize --folder dataset/test --model model.json
"""

import logging
from typing import Optional

import click
import numpy as np

from neuro import __version__
from neuro.config import Settings, configure_logging
from neuro.errors import NeuroError
from neuro.image_processor import create_path_set
from neuro.model_persistence import load_model_file, save_model_file
from neuro.network import Network
from neuro.recognizer import recognize_batch
from neuro.trainer import create_network, describe_model, train

logger = logging.getLogger(__name__)


def _load_model(model_path: str, precision: int) -> Network:
    try:
        return load_model_file(model_path, precision)
    except (OSError, ValueError, NeuroError) as e:
        raise click.ClickException(f"Could not load model from {model_path}: {e}")


def _print_model_info(network: Network) -> None:
    info = describe_model(network)
    click.echo("Model information:")
    click.echo(f"   Layers: {len(info['layers'])}")
    click.echo(f"   Loss function: {info['loss_function']}")
    click.echo(f"   Parameters: {info['parameters']}")
    for index, layer in enumerate(info['layers'], start=1):
        click.echo(
            f"   Layer {index}: {layer['neurons']} neurons, {layer['activation']}"
        )


@click.group()
@click.version_option(version=__version__)
@click.option("--log-level", default=None,
              help="Log level (overrides the LOG_LEVEL environment variable)")
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str]) -> None:
    """Train and run feed-forward networks on handwritten digits."""
    settings = Settings.from_env()
    configure_logging(settings, level=log_level)
    ctx.obj = settings


@cli.command(name="train")
@click.option("--folder", "-f", required=True,
              type=click.Path(exists=True, file_okay=False),
              help="Dataset folder with one sub-folder per digit")
@click.option("--model", "-m", required=True, type=click.Path(dir_okay=False),
              help="Model file to create or continue training")
@click.option("--layers", "-l", default=None,
              help="Comma-separated layer sizes, e.g. 784,64,10. "
                   "Omit to continue training an existing model.")
@click.option("--activations", "-a", default=None,
              help="Comma-separated activation names, one per layer")
@click.option("--loss", default=None, help="Loss function name (MSE or CrossEntropy)")
@click.option("--epochs", "-e", default=100, show_default=True,
              type=click.IntRange(min=1), help="Number of epochs")
@click.option("--speed", "-s", default=0.001, show_default=True,
              type=click.FloatRange(min=0, min_open=True), help="Learning rate")
@click.option("--seed", default=None, type=int,
              help="Seed for weight initialization and shuffling")
@click.pass_obj
def train_command(
    settings: Settings,
    folder: str,
    model: str,
    layers: Optional[str],
    activations: Optional[str],
    loss: Optional[str],
    epochs: int,
    speed: float,
    seed: Optional[int]
) -> None:
    """Train a new or existing model on a digit dataset."""
    rng = np.random.default_rng(seed)

    if layers:
        try:
            network = create_network(layers, activations, loss, rng=rng)
        except (ValueError, NeuroError) as e:
            raise click.ClickException(str(e))
        click.echo(f"New network created with layers [{layers}]")
    else:
        network = _load_model(model, settings.precision)
        click.echo(f"Existing model loaded from {model}")

    samples = create_path_set(folder)
    if not samples:
        raise click.ClickException(f"No images found in {folder}")
    click.echo(f"Found {len(samples)} images in {folder}")

    def on_epoch_complete(data) -> None:
        save_model_file(network, model, settings.precision)
        click.echo(
            f"Epoch {data['epoch']}/{data['total_epochs']}: "
            f"loss {data['loss']:.4f}, accuracy {data['accuracy']:.2%}, "
            f"saved to {model}"
        )

    try:
        train(network, samples, epochs, speed, callback=on_epoch_complete, rng=rng)
    except (ValueError, NeuroError) as e:
        raise click.ClickException(f"Training failed: {e}")

    click.echo("Training completed")


@cli.command(name="recognize")
@click.option("--folder", "-f", required=True,
              type=click.Path(exists=True, file_okay=False),
              help="Dataset folder with one sub-folder per digit")
@click.option("--model", "-m", required=True,
              type=click.Path(exists=True, dir_okay=False), help="Model file")
@click.option("--details", is_flag=True, help="Print one line per image")
@click.pass_obj
def recognize_command(settings: Settings, folder: str, model: str,
                      details: bool) -> None:
    """Recognize every image of a dataset and report accuracy."""
    network = _load_model(model, settings.precision)
    _print_model_info(network)

    samples = create_path_set(folder)
    click.echo(f"Found {len(samples)} images in {folder}")

    try:
        result = recognize_batch(network, samples)
    except (ValueError, NeuroError) as e:
        raise click.ClickException(f"Recognition failed: {e}")

    if details:
        for item in result.details:
            mark = "ok " if item['correct'] else "err"
            click.echo(
                f"   [{mark}] expected {item['expected']}, "
                f"predicted {item['predicted']} ({item['confidence']:.2%})"
            )

    click.echo(
        f"Correct answers: {result.correct_answers}/{result.total_images} "
        f"({result.success_rate:.2%})"
    )


@cli.command(name="info")
@click.option("--model", "-m", required=True,
              type=click.Path(exists=True, dir_okay=False), help="Model file")
@click.pass_obj
def info_command(settings: Settings, model: str) -> None:
    """Print the architecture of a saved model."""
    _print_model_info(_load_model(model, settings.precision))


def main() -> None:
    cli()


if __name__ == '__main__':
    main()
