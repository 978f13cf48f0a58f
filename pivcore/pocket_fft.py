"""Two-dimensional transforms backed by numpy's pocketfft routines.

Images are indexed ``[row, column]``; sizes are ``(width, height)``.
Neither direction is normalised.
"""

from __future__ import annotations

import numpy as np

from pivcore.fft import is_pow2, swap_quadrants
from pivcore.fft_common import Direction


def _format_size(width, height) -> str:
    return f"[{width},{height}]"


class PocketFFT:
    """Two-dimensional FFT of a fixed power-of-two size; safe to share between threads."""

    def __init__(self, size):
        width, height = (int(v) for v in size)
        if not (is_pow2(width) and is_pow2(height)):
            raise ValueError(f"dimensions must be power of 2: {_format_size(width, height)}")
        self.size = (width, height)

    def _checked(self, image, shape=None) -> np.ndarray:
        data = np.asarray(image)
        width, height = self.size
        expected = shape if shape is not None else (height, width)
        if data.shape != expected:
            got = (
                _format_size(data.shape[1], data.shape[0])
                if data.ndim == 2
                else str(data.shape)
            )
            raise ValueError(
                "image size is different from expected: "
                f"{got}, {_format_size(expected[1], expected[0])}"
            )
        return data

    def transform(self, image, direction=Direction.FORWARD) -> np.ndarray:
        """Complex-to-complex transform of ``image``."""
        data = self._checked(image).astype(np.complex128, copy=False)
        if direction is Direction.FORWARD:
            return np.fft.fft2(data)
        return np.fft.ifft2(data, norm="forward")

    def _real_to_half(self, image, direction: Direction) -> np.ndarray:
        data = self._checked(image).astype(np.float64, copy=False)
        spectrum = np.fft.rfftn(data, axes=(1, 0))
        return spectrum if direction is Direction.FORWARD else np.conj(spectrum)

    def transform_real(self, a, b, direction=Direction.FORWARD):
        """Transform two real images into their half spectra of ``height // 2 + 1`` rows."""
        self._checked(a)
        self._checked(b)
        return self._real_to_half(a, direction), self._real_to_half(b, direction)

    def transform_complex_to_real(self, image, direction=Direction.FORWARD) -> np.ndarray:
        """Transform a half spectrum back into a full-size real image."""
        width, height = self.size
        data = self._checked(image, shape=(height // 2 + 1, width)).astype(
            np.complex128, copy=False
        )
        if direction is Direction.FORWARD:
            data = np.conj(data)
        return np.fft.irfftn(data, s=(width, height), axes=(1, 0), norm="forward")

    def cross_correlate(self, a, b) -> np.ndarray:
        """Cross-correlate ``a`` with ``b``; zero displacement is at the centre."""
        a_fft = self.transform(a, Direction.FORWARD)
        b_fft = self.transform(b, Direction.FORWARD)
        output = self.transform(b_fft * np.conj(a_fft), Direction.REVERSE).real.copy()
        swap_quadrants(output)
        return output

    def cross_correlate_real(self, a, b) -> np.ndarray:
        """Cross-correlate two real images using real-input transforms."""
        a_fft, b_fft = self.transform_real(a, b, Direction.FORWARD)
        output = self.transform_complex_to_real(b_fft * np.conj(a_fft), Direction.REVERSE)
        swap_quadrants(output)
        return output

    def auto_correlate(self, a) -> np.ndarray:
        """Auto-correlate ``a``, giving a complex image with zero imaginary part."""
        a_fft = self.transform(a, Direction.FORWARD)
        power = np.abs(a_fft) ** 2
        output = self.transform(power, Direction.REVERSE).real.astype(np.complex128)
        swap_quadrants(output)
        return output