"""FFT correlation, image statistics and PNM/TIFF image loaders for PIV processing."""

__version__ = "0.1.0"