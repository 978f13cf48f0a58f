"""The image loader interface and the registry of available loaders.

Images are numpy arrays indexed ``[row, column]``. Greyscale images are
two-dimensional; colour images carry RGBA samples in a trailing axis of four.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod

_log = logging.getLogger(__name__)


class ImageLoaderError(RuntimeError):
    """Raised when image data cannot be read or written."""


class ImageLoader(ABC):
    """Reads, and possibly writes, one image file format.

    A loader may hold state between :meth:`open` and :meth:`extract`, such
    as the dimensions and offsets of the images within a multi-image file.
    A call to :meth:`open` or :meth:`load` resets that state.
    """

    @abstractmethod
    def name(self) -> str:
        """MIME type handled by this loader."""

    @abstractmethod
    def priority(self) -> int:
        """Ordering among loaders; lower values are tried first."""

    @abstractmethod
    def clone(self) -> "ImageLoader":
        """Return a fresh loader of the same kind."""

    @abstractmethod
    def can_load(self, stream) -> bool:
        """Return True if ``stream`` holds data this loader reads.

        The stream position is left unchanged.
        """

    @abstractmethod
    def can_save(self) -> bool:
        """Return True if this loader can write images."""

    @abstractmethod
    def num_images(self) -> int:
        """Number of images in the opened data."""

    @abstractmethod
    def open(self, stream) -> bool:
        """Read the header from ``stream``; raise ImageLoaderError if invalid."""

    @abstractmethod
    def extract(self, index):
        """Return image ``index`` from the opened stream."""

    def load(self, stream):
        """Open ``stream`` and return its first image."""
        if not self.open(stream):
            raise ImageLoaderError(f"{self.name()}: failed to open image data")
        return self.extract(0)

    @abstractmethod
    def save(self, stream, image) -> None:
        """Write ``image`` to ``stream``."""


_registry: list[ImageLoader] = []
_registry_lock = threading.Lock()


def _loaders() -> list[ImageLoader]:
    with _registry_lock:
        return list(_registry)


def register_loader(loader) -> bool:
    """Add ``loader`` to the registry, keeping it ordered by priority."""
    if loader is None:
        raise ValueError("attempting to register null image loader")
    if not isinstance(loader, ImageLoader):
        raise TypeError(f"not an image loader: {loader!r}")
    name = loader.name()
    with _registry_lock:
        _registry.append(loader)
        _registry.sort(key=lambda item: item.priority())
    _log.info("registered: %s", name)
    return True


def find_loader(stream):
    """Return a new loader able to read ``stream``, or None if there is none."""
    for loader in _loaders():
        if loader.can_load(stream):
            return loader.clone()
    return None


def find_loader_by_name(name: str):
    """Return a new loader whose name is ``name``, or None if there is none."""
    for loader in _loaders():
        if loader.name() == name:
            return loader.clone()
    return None