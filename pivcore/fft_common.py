"""Shared definitions for the Fourier transform engines."""

from __future__ import annotations

from enum import Enum


class Direction(Enum):
    """Direction of a Fourier transform."""

    FORWARD = "forward"
    REVERSE = "reverse"

    def __str__(self) -> str:
        return self.value

    @property
    def exponent_sign(self) -> float:
        """Sign of the exponent used by the transform kernel."""
        return -1.0 if self is Direction.FORWARD else 1.0

    @classmethod
    def from_string(cls, text: str) -> "Direction":
        """Parse a direction from its textual name."""
        try:
            return cls(text)
        except ValueError:
            raise ValueError(f"unknown direction: {text!r}") from None