[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pivcore"
version = "0.1.0"
description = "FFT correlation, image statistics and PNM/TIFF image loading for particle image velocimetry"
requires-python = ">=3.10"
dependencies = ["numpy"]
keywords = ["piv", "fft", "cross-correlation", "image", "pnm", "tiff"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Scientific/Engineering :: Image Processing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["pivcore"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
