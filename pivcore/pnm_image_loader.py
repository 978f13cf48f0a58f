"""Reading and writing binary PNM images (P5 greyscale, P6 RGB).

Sample data is treated as linear; no gamma correction is applied. Samples
wider than eight bits are big-endian. Loaded images are ``uint16``: greyscale
as ``(height, width)``, colour as ``(height, width, 4)`` RGBA.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass

import numpy as np

from pivcore.image_loader import ImageLoader, ImageLoaderError, register_loader
from pivcore.stats import find_image_range

_log = logging.getLogger(__name__)

_MAX_SAMPLE = 65535
_MAX_HEADER_LINE = 1024
_SUPPORTED_KINDS = (b"5", b"6")


@contextmanager
def _restore_position(stream):
    position = stream.tell()
    try:
        yield
    finally:
        stream.seek(position)


def _check_readable(stream) -> None:
    if getattr(stream, "closed", False) or not stream.readable():
        raise ImageLoaderError("input stream is not ready for reading")


def _read_int(stream) -> int:
    """Read a decimal header field, skipping whitespace and comment lines."""
    while True:
        char = stream.read(1)
        if not char:
            raise ImageLoaderError("unexpected end of PNM header")
        if char == b"#":
            stream.readline()
        elif not char.isspace():
            break
    digits = bytearray()
    while char.isdigit():
        digits += char
        char = stream.read(1)
        if not char:
            break
    else:
        stream.seek(-1, 1)
    if not digits:
        raise ImageLoaderError("malformed PNM header")
    return int(digits)


@dataclass(frozen=True)
class _Header:
    kind: int
    width: int
    height: int
    depth: int


def _header_text(kind: int, width: int, height: int) -> bytes:
    return (
        f"P{kind}\n# created by pnm_image_loader\n{width} {height}\n{_MAX_SAMPLE}\n"
    ).encode("ascii")


def _as_uint16(data: np.ndarray) -> np.ndarray:
    if np.iscomplexobj(data):
        raise TypeError("complex images cannot be saved as PNM")
    if not np.issubdtype(data.dtype, np.integer):
        raise TypeError(f"unsupported sample type for PNM: {data.dtype}")
    if data.size and (data.min() < 0 or data.max() > _MAX_SAMPLE):
        raise ValueError("sample values do not fit in 16 bits")
    return data.astype(np.uint16)


def _scaled_to_uint16(data: np.ndarray) -> np.ndarray:
    low, high = find_image_range(data)
    span = high - low if high != low else 1.0
    return (_MAX_SAMPLE * ((data.astype(np.float64) - low) / span)).astype(np.uint16)


class PnmImageLoader(ImageLoader):
    """Loader for binary PNM images with up to 16 bits per sample."""

    def __init__(self):
        self._stream = None
        self._header: _Header | None = None

    def name(self) -> str:
        return "image/x-portable-anymap"

    def priority(self) -> int:
        return 1

    def clone(self) -> "PnmImageLoader":
        return PnmImageLoader()

    def can_load(self, stream) -> bool:
        _check_readable(stream)
        with _restore_position(stream):
            magic = stream.read(2)
        if len(magic) < 2:
            raise ImageLoaderError("input stream doesn't contain enough data")
        return magic[:1] == b"P" and magic[1:2] in _SUPPORTED_KINDS

    def can_save(self) -> bool:
        return True

    def num_images(self) -> int:
        return 1

    def open(self, stream) -> bool:
        self._stream = stream
        self._header = None
        first_line = stream.readline(_MAX_HEADER_LINE)
        if not (first_line[:1] == b"P" and first_line[1:2] in _SUPPORTED_KINDS):
            shown = first_line[:2].decode("latin-1")
            raise ImageLoaderError(f"image type not supported: {shown}")
        kind = int(first_line[1:2])
        width = _read_int(stream)
        height = _read_int(stream)
        depth = _read_int(stream)
        stream.readline()
        self._header = _Header(kind, width, height, depth)
        _log.debug("PNM%d [%d, %d], %d", kind, width, height, depth)
        return True

    def extract(self, index):
        """Return the image; PNM data holds one image, so ``index`` is not used."""
        header = self._header
        if header is None:
            raise ImageLoaderError("no valid PNM image has been opened")
        samples = 1 if header.kind == 5 else 3
        dtype = np.dtype(">u2") if header.depth > 255 else np.dtype(np.uint8)
        count = header.width * header.height * samples
        wanted = count * dtype.itemsize
        raw = self._stream.read(wanted)
        raw = raw + bytes(wanted - len(raw))
        values = np.frombuffer(raw, dtype=dtype).astype(np.uint16)
        if samples == 1:
            return values.reshape(header.height, header.width)
        image = np.full((header.height, header.width, 4), _MAX_SAMPLE, dtype=np.uint16)
        image[..., :3] = values.reshape(header.height, header.width, 3)
        return image

    def save(self, stream, image) -> None:
        data = np.asarray(image)
        if data.ndim == 3 and data.shape[2] in (3, 4):
            height, width = data.shape[:2]
            samples = _as_uint16(data[..., :3])
            kind = 6
        elif data.ndim == 2:
            height, width = data.shape
            if np.issubdtype(data.dtype, np.floating):
                samples = _scaled_to_uint16(data)
            else:
                samples = _as_uint16(data)
            kind = 5
        else:
            raise ValueError(f"unsupported image shape for PNM: {data.shape}")
        stream.write(_header_text(kind, width, height))
        stream.write(samples.astype(">u2").tobytes())
        flush = getattr(stream, "flush", None)
        if flush is not None:
            flush()


register_loader(PnmImageLoader())