"""
image_processor.py
~~~~~~~~~~~~~~~~~~

Loading digit images and turning them into network inputs.

Datasets are laid out as one sub-directory per label::

    dataset/
        0/  img_1.png  img_2.png ...
        1/  ...
"""

import os
import logging
from typing import List, Sequence, Tuple

import numpy as np
import matplotlib.image as mpimg

logger = logging.getLogger(__name__)

# (label, 2-D image with values in [0, 1])
Sample = Tuple[int, np.ndarray]

IMAGE_EXTENSIONS = ('.png',)


def load_image(file_path: str) -> np.ndarray:
    """
    Load an image as a 2-D array normalized to [0, 1].

    Colour images keep only their first (red) channel.

    Args:
        file_path: Path to a PNG file

    Returns:
        2-D float array of shape (height, width)
    """
    image = mpimg.imread(file_path)

    if image.ndim == 3:
        image = image[:, :, 0]

    # matplotlib already returns floats in [0, 1] for PNG; other formats are ints
    if np.issubdtype(image.dtype, np.integer):
        image = image / 255.0

    return np.asarray(image, dtype=float)


def create_path_set(folder_path: str) -> List[Sample]:
    """
    Load every image under ``folder_path/<label>/``.

    Sub-directories whose name is not a number are skipped. Directories and
    files are visited in sorted order so the result is deterministic.
    """
    samples: List[Sample] = []

    for entry in sorted(os.listdir(folder_path)):
        label_dir = os.path.join(folder_path, entry)
        if not os.path.isdir(label_dir):
            continue
        if not entry.isdigit():
            logger.debug(f"Skipping non-label directory: {label_dir}")
            continue

        label = int(entry)
        for file_name in sorted(os.listdir(label_dir)):
            if not file_name.lower().endswith(IMAGE_EXTENSIONS):
                continue
            samples.append((label, load_image(os.path.join(label_dir, file_name))))

    logger.info(f"Loaded {len(samples)} image(s) from {folder_path}")
    return samples


def flatten_image(image_data) -> List[float]:
    """Flatten a 2-D image row by row into a network input vector."""
    return [float(value) for value in np.asarray(image_data, dtype=float).ravel()]


def create_expected_output(result: int, num_classes: int = 10) -> List[float]:
    """One-hot encode ``result``."""
    if not 0 <= result < num_classes:
        raise ValueError(
            f"Label {result} is outside the range [0, {num_classes})"
        )
    expected = [0.0] * num_classes
    expected[result] = 1.0
    return expected


def normalize_pixels(values: Sequence[float], max_value: float = 255) -> List[float]:
    """Scale raw pixel values (e.g. the 0/255 drawing grid) to [0, 1]."""
    return [float(value) / max_value for value in values]
