"""A basic decimation-in-time radix-2 Fourier transform for images.

Images are two-dimensional arrays indexed ``[row, column]``; sizes are
given as ``(width, height)``. Neither direction is normalised.
"""

from __future__ import annotations

from functools import lru_cache

import numpy as np

from pivcore.fft_common import Direction


def is_pow2(value) -> bool:
    """Return True if ``value`` is a positive power of two."""
    value = int(value)
    return value > 0 and value & (value - 1) == 0


def swap_quadrants(image) -> None:
    """Swap the diagonal quadrants of ``image`` in place."""
    height, width = image.shape[:2]
    image[...] = np.roll(image, (height // 2, width // 2), axis=(0, 1))


@lru_cache(maxsize=None)
def _bit_reversal(n: int) -> np.ndarray:
    bits = n.bit_length() - 1
    index = np.arange(n, dtype=np.intp)
    reversed_index = np.zeros(n, dtype=np.intp)
    for bit in range(bits):
        reversed_index |= ((index >> bit) & 1) << (bits - 1 - bit)
    reversed_index.setflags(write=False)
    return reversed_index


def _twiddle_factors(n: int, direction: Direction) -> dict[int, np.ndarray]:
    """Twiddle factors keyed by half the butterfly length."""
    table = {}
    half = 1
    while half < max(n, 2):
        k = np.arange(half)
        table[half] = np.exp(1j * direction.exponent_sign * np.pi * k / half)
        half *= 2
    return table


def _format_size(width, height) -> str:
    return f"[{width},{height}]"


class FFT:
    """Two-dimensional FFT of a fixed power-of-two size; safe to share between threads."""

    def __init__(self, size):
        width, height = (int(v) for v in size)
        if not (is_pow2(width) and is_pow2(height)):
            raise ValueError(f"dimensions must be power of 2: {_format_size(width, height)}")
        self.size = (width, height)
        longest = max(width, height)
        self._scaling = {d: _twiddle_factors(longest, d) for d in Direction}

    def _checked(self, image) -> np.ndarray:
        data = np.asarray(image)
        width, height = self.size
        if data.shape != (height, width):
            got = (
                _format_size(data.shape[1], data.shape[0])
                if data.ndim == 2
                else str(data.shape)
            )
            raise ValueError(
                "image size is different from expected: "
                f"{got}, {_format_size(width, height)}"
            )
        return data

    def _fft_rows(self, data: np.ndarray, direction: Direction) -> np.ndarray:
        n = data.shape[-1]
        out = data[..., _bit_reversal(n)]
        table = self._scaling[direction]
        half = 1
        while half < n:
            span = 2 * half
            blocks = out.reshape(*out.shape[:-1], n // span, span)
            even = blocks[..., :half]
            odd = blocks[..., half:] * table[half]
            out = np.concatenate((even + odd, even - odd), axis=-1).reshape(data.shape)
            half = span
        return out

    def _transform2d(self, data: np.ndarray, direction: Direction) -> np.ndarray:
        rows = self._fft_rows(data.astype(np.complex128, copy=False), direction)
        columns = self._fft_rows(np.ascontiguousarray(rows.T), direction)
        return np.ascontiguousarray(columns.T)

    def transform(self, image, direction=Direction.FORWARD) -> np.ndarray:
        """Transform ``image`` in both dimensions, giving a complex image."""
        return self._transform2d(self._checked(image), direction)

    def transform_real(self, a, b, direction=Direction.FORWARD):
        """Transform two real images at once, returning their two spectra."""
        real_a = self._checked(a)
        real_b = self._checked(b)
        joined = real_a.astype(np.float64) + 1j * real_b.astype(np.float64)
        spectrum = self._transform2d(joined, direction)

        height, width = spectrum.shape
        out_a = np.zeros_like(spectrum)
        out_b = np.zeros_like(spectrum)
        rows = np.arange(1, height // 2)
        cols = np.arange(1, width)
        if rows.size and cols.size:
            direct = np.ix_(rows, cols)
            mirror = np.ix_(height - rows, width - cols)
            t1 = spectrum[direct]
            t2 = np.conj(spectrum[mirror])
            value_a = 0.5 * (t1 + t2)
            value_b = 0.5 * (t1 - t2)
            value_b = value_b.imag - 1j * value_b.real
            out_a[direct] = value_a
            out_a[mirror] = np.conj(value_a)
            out_b[direct] = value_b
            out_b[mirror] = np.conj(value_b)
        return out_a, out_b

    def cross_correlate(self, a, b) -> np.ndarray:
        """Cross-correlate ``a`` with ``b``; zero displacement is at the centre."""
        a_fft = self.transform(a, Direction.FORWARD)
        b_fft = self.transform(b, Direction.FORWARD)
        output = self.transform(b_fft * np.conj(a_fft), Direction.REVERSE).real.copy()
        swap_quadrants(output)
        return output

    def cross_correlate_real(self, a, b) -> np.ndarray:
        """Cross-correlate two real images using a single joint transform."""
        a_fft, b_fft = self.transform_real(a, b, Direction.FORWARD)
        output = self.transform(b_fft * np.conj(a_fft), Direction.REVERSE).real.copy()
        swap_quadrants(output)
        return output

    def auto_correlate(self, a) -> np.ndarray:
        """Auto-correlate ``a``, giving a complex image with zero imaginary part."""
        a_fft = self.transform(a, Direction.FORWARD)
        power = np.abs(a_fft) ** 2
        output = self.transform(power, Direction.REVERSE).real.astype(np.complex128)
        swap_quadrants(output)
        return output