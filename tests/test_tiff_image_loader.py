import io
import struct

import numpy as np
import pytest

from pivcore.image_loader import ImageLoaderError, find_loader, find_loader_by_name
from pivcore.tiff_image_loader import TiffImageLoader


def _page_entries(order, arr, data_offset, data_len, bps_offset, compression):
    height, width = arr.shape[:2]
    spp = 1 if arr.ndim == 2 else arr.shape[2]
    bits = arr.dtype.itemsize * 8
    bps_value = bits if spp == 1 else bps_offset
    return [
        (256, 4, 1, width),
        (257, 4, 1, height),
        (258, 3, spp, bps_value),
        (259, 3, 1, compression),
        (262, 3, 1, 1 if spp == 1 else 2),
        (273, 4, 1, data_offset),
        (277, 3, 1, spp),
        (278, 4, 1, height),
        (279, 4, 1, data_len),
        (284, 3, 1, 1),
    ]


def _build_tiff(pages, order="<", compression=1, strip_data=None):
    out = bytearray(b"II*\x00" if order == "<" else b"MM\x00*")
    pointer = len(out)
    out += b"\x00" * 4
    for arr in pages:
        arr = np.asarray(arr)
        spp = 1 if arr.ndim == 2 else arr.shape[2]
        bits = arr.dtype.itemsize * 8
        pixels = strip_data
        if pixels is None:
            pixels = arr.astype(np.dtype(f"{order}u{arr.dtype.itemsize}")).tobytes()
        data_offset = len(out)
        out += pixels
        if len(out) % 2:
            out += b"\x00"
        bps_offset = len(out)
        if spp > 1:
            out += struct.pack(order + "H" * spp, *([bits] * spp))
        entries = _page_entries(order, arr, data_offset, len(pixels), bps_offset, compression)
        ifd = len(out)
        struct.pack_into(order + "I", out, pointer, ifd)
        out += struct.pack(order + "H", len(entries))
        for tag, kind, count, value in entries:
            out += struct.pack(order + "HHI", tag, kind, count)
            if kind == 3 and count == 1:
                out += struct.pack(order + "HH", value, 0)
            else:
                out += struct.pack(order + "I", value)
        pointer = len(out)
        out += b"\x00" * 4
    return bytes(out)


def _opened(data):
    loader = TiffImageLoader()
    assert loader.open(io.BytesIO(data)) is True
    return loader


def test_tiff_loader_mono_dimensions():
    rng = np.random.default_rng(1)
    arr = rng.integers(0, 256, size=(369, 511), dtype=np.uint8)
    stream = io.BytesIO(_build_tiff([arr]))
    loader = find_loader(stream)
    assert loader.name() == "image/tiff"
    image = loader.load(stream)
    assert image.shape == (369, 511)
    assert image.dtype == np.uint16
    np.testing.assert_array_equal(image, arr)


def test_tiff_loader_rgb_dimensions():
    rng = np.random.default_rng(2)
    arr = rng.integers(0, 256, size=(369, 511, 3), dtype=np.uint8)
    stream = io.BytesIO(_build_tiff([arr]))
    loader = find_loader(stream)
    assert loader.name() == "image/tiff"
    image = loader.load(stream)
    assert image.shape == (369, 511, 4)
    np.testing.assert_array_equal(image[..., :3], arr)
    assert (image[..., 3] == 65535).all()


@pytest.mark.parametrize("order", ["<", ">"])
def test_16bit_mono_both_byte_orders(order):
    arr = np.arange(12, dtype=np.uint16).reshape(3, 4) * 1000 + 7
    image = _opened(_build_tiff([arr], order=order)).extract(0)
    np.testing.assert_array_equal(image, arr)


@pytest.mark.parametrize("order", ["<", ">"])
def test_16bit_rgb(order):
    arr = np.arange(2 * 3 * 3, dtype=np.uint16).reshape(2, 3, 3) * 3000
    image = _opened(_build_tiff([arr], order=order)).extract(0)
    np.testing.assert_array_equal(image[..., :3], arr)
    assert (image[..., 3] == 65535).all()


def test_multiple_images():
    first = np.full((2, 2), 10, dtype=np.uint8)
    second = np.full((3, 5), 20, dtype=np.uint8)
    loader = _opened(_build_tiff([first, second]))
    assert loader.num_images() == 2
    np.testing.assert_array_equal(loader.extract(0), first)
    np.testing.assert_array_equal(loader.extract(1), second)


def test_index_out_of_range():
    loader = _opened(_build_tiff([np.zeros((2, 2), dtype=np.uint8)]))
    with pytest.raises(ImageLoaderError, match="out of range"):
        loader.extract(1)


def test_unsupported_samples_per_pixel():
    arr = np.zeros((2, 2, 2), dtype=np.uint8)
    loader = _opened(_build_tiff([arr]))
    with pytest.raises(ImageLoaderError, match="spp != 1 or 3"):
        loader.extract(0)


def test_packbits_strip():
    arr = np.zeros((1, 6), dtype=np.uint8)
    # repeat 7 four times, then literal run of two bytes
    packed = b"\xfd\x07\x01\x01\x02"
    image = _opened(_build_tiff([arr], compression=32773, strip_data=packed)).extract(0)
    np.testing.assert_array_equal(image, [[7, 7, 7, 7, 1, 2]])


def test_unsupported_compression():
    arr = np.zeros((2, 2), dtype=np.uint8)
    loader = _opened(_build_tiff([arr], compression=5))
    with pytest.raises(ImageLoaderError, match="compression"):
        loader.extract(0)


def test_num_images_before_open_is_zero():
    assert TiffImageLoader().num_images() == 0


def test_extract_before_open_raises():
    with pytest.raises(ImageLoaderError):
        TiffImageLoader().extract(0)


def test_open_rejects_non_tiff():
    with pytest.raises(ImageLoaderError):
        TiffImageLoader().open(io.BytesIO(b"P5\n2 2\n255\n\x00\x00\x00\x00"))


@pytest.mark.parametrize(
    "header,expected",
    [
        (b"\x49\x49\x2a\x00rest", True),
        (b"\x4d\x4d\x00\x2arest", True),
        (b"P5\n2 2\n", False),
    ],
)
def test_can_load(header, expected):
    stream = io.BytesIO(header)
    assert TiffImageLoader().can_load(stream) is expected
    assert stream.tell() == 0


def test_can_load_too_short():
    with pytest.raises(ImageLoaderError, match="enough data"):
        TiffImageLoader().can_load(io.BytesIO(b"II"))


def test_can_load_closed_stream():
    stream = io.BytesIO(b"II*\x00")
    stream.close()
    with pytest.raises(ImageLoaderError, match="not ready"):
        TiffImageLoader().can_load(stream)


def test_save_not_supported():
    loader = TiffImageLoader()
    assert loader.can_save() is False
    with pytest.raises(ImageLoaderError, match="image/tiff: cannot save data"):
        loader.save(io.BytesIO(), np.zeros((2, 2), dtype=np.uint16))


def test_identity_and_registry():
    loader = TiffImageLoader()
    assert loader.name() == "image/tiff"
    assert loader.priority() == 1
    assert isinstance(loader.clone(), TiffImageLoader)
    found = find_loader_by_name("image/tiff")
    assert isinstance(found, TiffImageLoader)