"""
recognizer.py
~~~~~~~~~~~~~

Digit recognition with a trained network.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple, Sequence

import numpy as np

from neuro.image_processor import Sample, flatten_image
from neuro.network import Network

logger = logging.getLogger(__name__)


class Recognition(NamedTuple):
    index: int
    confidence: float
    probabilities: List[float]


@dataclass
class RecognitionResult:
    correct_answers: int = 0
    total_images: int = 0
    details: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        if self.total_images == 0:
            return 0.0
        return self.correct_answers / self.total_images


def recognize_vector(network: Network, input_vector: Sequence[float]) -> Recognition:
    """Run a forward pass and pick the most probable class."""
    probabilities = network.set_input_signals(input_vector).forward().output_values
    index = int(np.argmax(probabilities))
    return Recognition(index, probabilities[index], probabilities)


def recognize_image(network: Network, image_data) -> Recognition:
    return recognize_vector(network, flatten_image(image_data))


def recognize_batch(network: Network, samples: Sequence[Sample]) -> RecognitionResult:
    """
    Recognize every sample and collect accuracy statistics.

    Args:
        network: Trained network
        samples: ``(label, image)`` pairs

    Returns:
        RecognitionResult with one detail entry per sample
    """
    result = RecognitionResult()

    for expected, image_data in samples:
        recognition = recognize_image(network, image_data)
        correct = recognition.index == expected

        result.total_images += 1
        if correct:
            result.correct_answers += 1
        result.details.append({
            'expected': expected,
            'predicted': recognition.index,
            'confidence': recognition.confidence,
            'correct': correct
        })

    logger.info(
        f"Recognized {result.correct_answers}/{result.total_images} "
        f"images correctly ({result.success_rate:.2%})"
    )
    return result
