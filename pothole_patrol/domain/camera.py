from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import numpy as np


@dataclass(frozen=True)
class Resolution:
    width: int
    height: int

    def as_tuple(self) -> tuple[int, int]:
        return self.width, self.height


@dataclass(frozen=True)
class Frame:
    """A still frame in OpenCV BGR order."""

    data: np.ndarray
    timestamp: float

    @property
    def shape(self) -> tuple[int, ...]:
        return self.data.shape

    @property
    def resolution(self) -> Resolution:
        height, width = self.data.shape[:2]
        return Resolution(width, height)


class VideoSource(Protocol):
    def read(self) -> Frame | None:
        """Return the latest frame from the stream or ``None`` if unavailable."""

    def close(self) -> None:
        """Release the underlying capture resources."""
