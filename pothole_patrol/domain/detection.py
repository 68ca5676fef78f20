"""Detection value objects produced by a single inference pass."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class BoundingBox:
    """Corner-form box in model input-pixel coordinates (origin top-left)."""

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_center(cls, cx: float, cy: float, width: float, height: float) -> "BoundingBox":
        return cls(x=cx - width / 2, y=cy - height / 2, width=width, height=height)

    @classmethod
    def empty(cls) -> "BoundingBox":
        return cls(0.0, 0.0, 0.0, 0.0)

    def as_tuple(self) -> tuple[float, float, float, float]:
        return self.x, self.y, self.width, self.height


@dataclass(frozen=True)
class Detection:
    """One candidate object found in a frame."""

    confidence: float
    bounding_box: BoundingBox
    label: str

    def __post_init__(self) -> None:
        if not (0.0 <= self.confidence <= 1.0):
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")


def best_detection(detections: Iterable[Detection]) -> Detection | None:
    """Return the highest-confidence detection, the first one on ties."""

    best: Detection | None = None
    for detection in detections:
        if best is None or detection.confidence > best.confidence:
            best = detection
    return best


__all__ = ["BoundingBox", "Detection", "best_detection"]
