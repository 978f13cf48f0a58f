# pivcore

Building blocks for particle image velocimetry (PIV) in Python, built on numpy.
Images are numpy arrays indexed `[row, column]`; sizes are given as `(width, height)`.

## What is in it

- `pivcore.fft_common.Direction`: the `FORWARD` / `REVERSE` direction of a transform,
  with `Direction.from_string("forward")` to parse it from text.
- `pivcore.fft.FFT`: a radix-2 decimation-in-time 2-D FFT for a fixed power-of-two size.
  It offers `transform`, `transform_real` (two real images in one joint transform,
  giving two spectra), `cross_correlate`, `cross_correlate_real` and `auto_correlate`.
  Correlation outputs have their quadrants swapped so that zero displacement sits at
  the centre. Neither direction is normalised. The module also provides `is_pow2` and
  `swap_quadrants` (in place).
- `pivcore.pocket_fft.PocketFFT`: the same kind of engine backed by numpy's FFT routines.
  Here `transform_real` returns the half spectra (`height // 2 + 1` rows) of two real
  images, and `transform_complex_to_real` turns a half spectrum back into a full-size
  real image.
- `pivcore.stats.find_image_range`: the `(min, max)` pixel values of an image.
- `pivcore.image_loader`: the `ImageLoader` interface, the `ImageLoaderError` exception
  and a registry of loaders. `find_loader(stream)` picks a loader by sniffing a binary
  stream without moving its position; `find_loader_by_name(mime_type)` picks one by name.
  Both return a fresh loader, or `None`. `register_loader` adds a loader.
- `pivcore.pnm_image_loader.PnmImageLoader` (`"image/x-portable-anymap"`): reads binary
  P5 (greyscale) and P6 (RGB) images at 8 or 16 bits per sample, and writes 16-bit P5/P6.
  Floating-point greyscale images are scaled to the full 16-bit range when saved.
- `pivcore.tiff_image_loader.TiffImageLoader` (`"image/tiff"`): reads 8- and 16-bit
  greyscale and RGB TIFF images in either byte order, uncompressed or PackBits, in
  either planar configuration, including files that hold several images.

Loaded images are `uint16`: greyscale as `(height, width)`, colour as
`(height, width, 4)` RGBA with alpha at its maximum.

A loader module registers its loader when it is imported, so import
`pivcore.pnm_image_loader` and `pivcore.tiff_image_loader` before using the registry.

## Install

```
pip install pivcore
```

## Example

```python
import numpy as np
from pivcore.fft import FFT
from pivcore.stats import find_image_range

a = np.random.rand(64, 64)
b = np.roll(a, (3, 2), axis=(0, 1))

fft = FFT((64, 64))
correlation = fft.cross_correlate(a, b)
peak = np.unravel_index(np.argmax(correlation), correlation.shape)
low, high = find_image_range(correlation)
```

Loading and saving an image:

```python
import pivcore.pnm_image_loader
import pivcore.tiff_image_loader
from pivcore.image_loader import find_loader, find_loader_by_name

with open("frame.tiff", "rb") as stream:
    loader = find_loader(stream)
    image = loader.load(stream)

writer = find_loader_by_name("image/x-portable-anymap")
with open("frame.pgm", "wb") as out:
    writer.save(out, image)
```

Problems with the data raise `ImageLoaderError`.

## What it does not do

- There is no command-line tool; the package is a library.
- TIFF images cannot be written (`TiffImageLoader.save` raises `ImageLoaderError`);
  use the PNM loader to save.
- TIFF images with tiles, compression other than PackBits, sample counts other than
  1 or 3, or samples that are not unsigned 8- or 16-bit integers are not read.
- Only binary PNM (P5, P6) is read; ASCII and bitmap PNM are not.

## Tests

Install the `test` extra and run `pytest`.