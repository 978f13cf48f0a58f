"""Reading of baseline TIFF images with 8 or 16 bits per sample.

Greyscale images (one sample per pixel) load as ``uint16`` arrays of shape
``(height, width)``; RGB images (three samples per pixel) load as ``uint16``
RGBA arrays of shape ``(height, width, 4)`` with the alpha channel at its
maximum. Uncompressed and PackBits strips are read, in either byte order and
either planar configuration. Writing is not supported.
"""

from __future__ import annotations

import logging
import struct
from contextlib import contextmanager
from dataclasses import dataclass
from enum import IntEnum

import numpy as np

from pivcore.image_loader import ImageLoader, ImageLoaderError, register_loader

_log = logging.getLogger(__name__)

_LE_HEADER = b"\x49\x49\x2a\x00"
_BE_HEADER = b"\x4d\x4d\x00\x2a"
_MAX_SAMPLE = 65535


class _Tag(IntEnum):
    IMAGE_WIDTH = 256
    IMAGE_LENGTH = 257
    BITS_PER_SAMPLE = 258
    COMPRESSION = 259
    STRIP_OFFSETS = 273
    SAMPLES_PER_PIXEL = 277
    ROWS_PER_STRIP = 278
    STRIP_BYTE_COUNTS = 279
    PLANAR_CONFIG = 284
    SAMPLE_FORMAT = 339


class _PlanarConfig(IntEnum):
    CONTIG = 1
    SEPARATE = 2


class _SampleFormat(IntEnum):
    UINT = 1
    INT = 2
    IEEEFP = 3
    VOID = 4
    COMPLEXINT = 5
    COMPLEXIEEEFP = 6


class _Compression(IntEnum):
    NONE = 1
    PACKBITS = 32773


# field type -> (size in bytes, struct code)
_FIELD_TYPES = {
    1: (1, "B"),
    2: (1, "B"),
    3: (2, "H"),
    4: (4, "I"),
    5: (8, "II"),
    6: (1, "b"),
    7: (1, "B"),
    8: (2, "h"),
    9: (4, "i"),
    10: (8, "ii"),
    11: (4, "f"),
    12: (8, "d"),
    13: (4, "I"),
}


@dataclass(frozen=True)
class _Directory:
    width: int
    height: int
    bits_per_sample: tuple
    samples_per_pixel: int
    sample_format: int
    planar: int
    compression: int
    rows_per_strip: int
    strip_offsets: tuple
    strip_byte_counts: tuple | None


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


def _unpack(order: str, code: str, data: bytes, offset: int):
    size = struct.calcsize(order + code)
    if offset < 0 or offset + size > len(data):
        raise ImageLoaderError("TIFF data is truncated")
    return struct.unpack_from(order + code, data, offset)


def _read_tags(data: bytes, order: str, offset: int) -> tuple[dict, int]:
    (count,) = _unpack(order, "H", data, offset)
    tags = {}
    for position in range(offset + 2, offset + 2 + 12 * count, 12):
        tag, kind, n = _unpack(order, "HHI", data, position)
        if kind not in _FIELD_TYPES:
            continue
        size, code = _FIELD_TYPES[kind]
        total = size * n
        if total <= 4:
            start = position + 8
        else:
            (start,) = _unpack(order, "I", data, position + 8)
        if start + total > len(data):
            raise ImageLoaderError(f"TIFF tag {tag} points outside the data")
        tags[tag] = struct.unpack_from(order + code * n, data, start)
    (next_offset,) = _unpack(order, "I", data, offset + 2 + 12 * count)
    return tags, next_offset


def _directory_from_tags(tags: dict) -> _Directory:
    try:
        width = tags[_Tag.IMAGE_WIDTH][0]
        height = tags[_Tag.IMAGE_LENGTH][0]
    except (KeyError, IndexError):
        raise ImageLoaderError("TIFF directory has no image dimensions") from None

    def single(tag, default):
        values = tags.get(tag)
        return values[0] if values else default

    byte_counts = tags.get(_Tag.STRIP_BYTE_COUNTS)
    return _Directory(
        width=width,
        height=height,
        bits_per_sample=tuple(tags.get(_Tag.BITS_PER_SAMPLE, (1,))),
        samples_per_pixel=single(_Tag.SAMPLES_PER_PIXEL, 1),
        sample_format=single(_Tag.SAMPLE_FORMAT, _SampleFormat.UINT),
        planar=single(_Tag.PLANAR_CONFIG, _PlanarConfig.CONTIG),
        compression=single(_Tag.COMPRESSION, _Compression.NONE),
        rows_per_strip=max(1, min(single(_Tag.ROWS_PER_STRIP, height), max(height, 1))),
        strip_offsets=tuple(tags.get(_Tag.STRIP_OFFSETS, ())),
        strip_byte_counts=tuple(byte_counts) if byte_counts is not None else None,
    )


def _parse(data: bytes) -> tuple[str, list[_Directory]]:
    header = data[:4]
    if header == _LE_HEADER:
        order = "<"
    elif header == _BE_HEADER:
        order = ">"
    else:
        raise ImageLoaderError("failed to open TIFF for reading")
    (offset,) = _unpack(order, "I", data, 4)
    directories = []
    seen = set()
    while offset:
        if offset in seen:
            raise ImageLoaderError("TIFF directories form a loop")
        seen.add(offset)
        tags, offset = _read_tags(data, order, offset)
        directories.append(_directory_from_tags(tags))
    if not directories:
        raise ImageLoaderError("TIFF data holds no images")
    return order, directories


def _unpack_bits(raw: bytes) -> bytes:
    """Decode PackBits run-length data."""
    out = bytearray()
    position = 0
    while position < len(raw):
        n = raw[position]
        position += 1
        if n < 128:
            out += raw[position:position + n + 1]
            position += n + 1
        elif n != 128 and position < len(raw):
            out += bytes([raw[position]]) * (257 - n)
            position += 1
    return bytes(out)


class TiffImageLoader(ImageLoader):
    """Loader for TIFF images, sniffed by their ``II*\\0`` or ``MM\\0*`` header."""

    def __init__(self):
        self._data: bytes | None = None
        self._order = "<"
        self._directories: list[_Directory] = []

    def name(self) -> str:
        return "image/tiff"

    def priority(self) -> int:
        return 1

    def clone(self) -> "TiffImageLoader":
        return TiffImageLoader()

    def can_load(self, stream) -> bool:
        _check_readable(stream)
        with _restore_position(stream):
            header = stream.read(4)
        if len(header) < 4:
            raise ImageLoaderError("input stream doesn't contain enough data")
        return header in (_LE_HEADER, _BE_HEADER)

    def can_save(self) -> bool:
        return False

    def num_images(self) -> int:
        if self._data is None:
            return 0
        return len(self._directories)

    def open(self, stream) -> bool:
        self._data = None
        self._directories = []
        data = stream.read()
        self._order, self._directories = _parse(data)
        self._data = data
        first = self._directories[0]
        _log.debug(
            "TIFF [%d, %d], bps %s, spp %d, %d image(s)",
            first.width,
            first.height,
            first.bits_per_sample,
            first.samples_per_pixel,
            len(self._directories),
        )
        return True

    def _strip(self, directory: _Directory, index: int, expected: int) -> bytes:
        start = directory.strip_offsets[index]
        if directory.strip_byte_counts is not None:
            length = directory.strip_byte_counts[index]
        elif directory.compression == _Compression.NONE:
            length = expected
        else:
            raise ImageLoaderError("compressed TIFF strips need byte counts")
        raw = self._data[start:start + length]
        if directory.compression == _Compression.NONE:
            return raw
        if directory.compression == _Compression.PACKBITS:
            return _unpack_bits(raw)
        raise ImageLoaderError(f"TIFF compression not supported: {directory.compression}")

    def extract(self, index):
        if self._data is None:
            raise ImageLoaderError("no TIFF data has been opened")
        if not 0 <= index < len(self._directories):
            raise ImageLoaderError(
                f"image index out of range (index: {index}, "
                f"num_images: {len(self._directories)})"
            )
        directory = self._directories[index]
        spp = directory.samples_per_pixel
        if spp not in (1, 3):
            raise ImageLoaderError(f"images with spp != 1 or 3 not yet supported: ({spp})")
        if directory.sample_format != _SampleFormat.UINT:
            raise ImageLoaderError("only unsigned integer TIFF samples are supported")
        bits = directory.bits_per_sample[0]
        if bits not in (8, 16):
            raise ImageLoaderError(f"TIFF bits per sample not supported: {bits}")
        dtype = np.dtype(np.uint8) if bits == 8 else np.dtype(f"{self._order}u2")

        width, height = directory.width, directory.height
        separate = directory.planar == _PlanarConfig.SEPARATE and spp > 1
        planes = spp if separate else 1
        samples = 1 if separate else spp
        row_bytes = width * samples * dtype.itemsize
        plane_bytes = row_bytes * height
        rows = directory.rows_per_strip
        strips_per_plane = -(-height // rows)
        if len(directory.strip_offsets) < strips_per_plane * planes:
            raise ImageLoaderError("TIFF image has missing or tiled strip data")

        plane_arrays = []
        for plane in range(planes):
            chunks = []
            for strip in range(strips_per_plane):
                strip_rows = min(rows, height - strip * rows)
                chunks.append(
                    self._strip(directory, plane * strips_per_plane + strip, strip_rows * row_bytes)
                )
            chunk = b"".join(chunks)
            if len(chunk) < plane_bytes:
                raise ImageLoaderError("TIFF strip data is truncated")
            plane_arrays.append(
                np.frombuffer(chunk[:plane_bytes], dtype=dtype).reshape(height, width, samples)
            )
        pixels = np.concatenate(plane_arrays, axis=2).astype(np.uint16)

        if spp == 1:
            return pixels[..., 0].copy()
        image = np.full((height, width, 4), _MAX_SAMPLE, dtype=np.uint16)
        image[..., :3] = pixels
        return image

    def save(self, stream, image) -> None:
        raise ImageLoaderError(f"{self.name()}: cannot save data")


register_loader(TiffImageLoader())