"""Simple statistics over images."""

from __future__ import annotations

import numpy as np


def find_image_range(image):
    """Return the ``(min, max)`` pixel values of ``image``."""
    pixels = np.asarray(image).ravel()
    if pixels.size == 0:
        raise ValueError("cannot find the range of an empty image")
    return pixels.min().item(), pixels.max().item()