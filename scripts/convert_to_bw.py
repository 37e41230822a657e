#!/usr/bin/env python3
"""
Convert a PNG digit dataset to pure black and white.

Every pixel whose red channel is at least the threshold becomes white, every
other pixel black. The folder structure (one sub-folder per digit) is
preserved, so the output can be passed straight to ``neuro train``.

Usage:
    python scripts/convert_to_bw.py INPUT_DIR OUTPUT_DIR [THRESHOLD]

THRESHOLD is a value in [0, 1] and defaults to 0.5.
"""

import os
import sys
from typing import List, Tuple

import numpy as np
import matplotlib.image as mpimg

from neuro.image_processor import load_image


def find_images(input_dir: str) -> List[Tuple[str, str]]:
    """
    Collect PNG files below ``input_dir``.

    Returns:
    --------
    list
        (absolute path, path relative to input_dir) pairs, sorted
    """
    images = []
    for root, _, files in os.walk(input_dir):
        for file_name in files:
            if file_name.lower().endswith('.png'):
                path = os.path.join(root, file_name)
                images.append((path, os.path.relpath(path, input_dir)))
    return sorted(images)


def to_black_and_white(image: np.ndarray, threshold: float = 0.5) -> np.ndarray:
    """Threshold a [0, 1] grayscale image to exactly 0.0 or 1.0."""
    return (image >= threshold).astype(float)


def convert_image(src: str, dst: str, threshold: float) -> None:
    os.makedirs(os.path.dirname(dst), exist_ok=True)
    bw = to_black_and_white(load_image(src), threshold)
    mpimg.imsave(dst, bw, cmap='gray', vmin=0.0, vmax=1.0)


def main():
    """Main conversion function."""
    if len(sys.argv) not in (3, 4):
        print(__doc__)
        sys.exit(1)

    input_dir, output_dir = sys.argv[1], sys.argv[2]
    threshold = float(sys.argv[3]) if len(sys.argv) == 4 else 0.5

    if not os.path.isdir(input_dir):
        print(f"❌ Error: input directory not found: {input_dir}")
        sys.exit(1)
    if not 0.0 <= threshold <= 1.0:
        print(f"❌ Error: threshold must be in [0, 1], got {threshold}")
        sys.exit(1)

    print("=" * 60)
    print("Digit dataset converter: grayscale → black and white")
    print("=" * 60)

    images = find_images(input_dir)
    print(f"📂 Found {len(images)} PNG file(s) in {input_dir}")

    try:
        for count, (src, rel_path) in enumerate(images, start=1):
            convert_image(src, os.path.join(output_dir, rel_path), threshold)
            if count % 1000 == 0 or count == len(images):
                print(f"   Converted {count}/{len(images)}")

    except Exception as e:
        print(f"\n❌ Error during conversion: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)

    print(f"\n✅ Converted dataset written to {output_dir}")


if __name__ == '__main__':
    main()
