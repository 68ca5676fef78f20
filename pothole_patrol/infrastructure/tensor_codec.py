"""Conversion between frames, model input tensors and raw YOLO output."""

from __future__ import annotations

from typing import Mapping

import cv2
import numpy as np

from ..domain.detection import BoundingBox, Detection
from ..shared.errors import TensorLayoutError

BOX_CHANNELS = 4
DEFAULT_LABEL = "pothole"
UNKNOWN_LABEL = "unknown"


def _to_bgr(data: np.ndarray) -> np.ndarray:
    if data.ndim == 2:
        return cv2.cvtColor(data, cv2.COLOR_GRAY2BGR)
    if data.ndim == 3 and data.shape[2] == 4:
        return cv2.cvtColor(data, cv2.COLOR_BGRA2BGR)
    if data.ndim == 3 and data.shape[2] == 3:
        return data
    raise TensorLayoutError(f"Unsupported frame shape {data.shape}")


class TensorCodec:
    """Encode frames into ``[1, 3, S, S]`` tensors and decode ``[1, 4 + C, A]`` output.

    The resize canvas and the RGB buffer are allocated once per target size
    and reused for every frame.
    """

    def __init__(
        self,
        target_size: int = 640,
        num_classes: int = 1,
        class_labels: Mapping[int, str] | None = None,
        domain_label: str = DEFAULT_LABEL,
    ) -> None:
        if target_size <= 0:
            raise ValueError("target_size must be positive")
        if num_classes <= 0:
            raise ValueError("num_classes must be positive")
        self.target_size = target_size
        self.num_classes = num_classes
        self._labels = dict(class_labels or {0: domain_label})
        self._domain_label = domain_label
        self._canvas: np.ndarray | None = None
        self._rgb: np.ndarray | None = None

    @property
    def expected_channels(self) -> int:
        return BOX_CHANNELS + self.num_classes

    @property
    def canvas(self) -> np.ndarray | None:
        return self._canvas

    def _scratch(self, size: int) -> tuple[np.ndarray, np.ndarray]:
        if self._canvas is None or self._canvas.shape[0] != size:
            self._canvas = np.empty((size, size, 3), dtype=np.uint8)
            self._rgb = np.empty((size, size, 3), dtype=np.uint8)
        assert self._rgb is not None
        return self._canvas, self._rgb

    def encode_frame(self, data: np.ndarray, target_size: int | None = None) -> np.ndarray:
        """Resize ``data`` (BGR) to a square canvas and pack it as planar RGB in [0, 1]."""

        size = target_size or self.target_size
        source = _to_bgr(np.asarray(data))
        if source.shape[0] == 0 or source.shape[1] == 0:
            raise TensorLayoutError("Cannot encode an empty frame")
        if source.dtype != np.uint8:
            source = np.clip(source, 0, 255).astype(np.uint8)

        canvas, rgb = self._scratch(size)
        resized = cv2.resize(source, (size, size), dst=canvas, interpolation=cv2.INTER_LINEAR)
        if resized is not canvas:
            np.copyto(canvas, resized)
        converted = cv2.cvtColor(canvas, cv2.COLOR_BGR2RGB, dst=rgb)
        if converted is not rgb:
            np.copyto(rgb, converted)

        tensor = np.empty((1, 3, size, size), dtype=np.float32)
        tensor[0] = rgb.transpose(2, 0, 1)
        tensor *= 1.0 / 255.0
        return tensor

    def decode_output(self, output: np.ndarray, confidence_threshold: float) -> list[Detection]:
        """Turn raw ``[1, 4 + C, A]`` output into detections in anchor order."""

        output = np.asarray(output)
        if output.ndim != 3 or output.shape[0] != 1:
            raise TensorLayoutError(
                f"Expected model output of shape [1, channels, anchors], got {list(output.shape)}"
            )
        channels = output.shape[1]
        if channels != self.expected_channels:
            raise TensorLayoutError(
                f"Model output has {channels} channels, expected {self.expected_channels} "
                f"(4 box + {self.num_classes} classes)"
            )

        rows = output[0]
        scores = rows[BOX_CHANNELS:, :]
        best_scores = scores.max(axis=0)
        best_classes = scores.argmax(axis=0)
        keep = np.nonzero(best_scores >= confidence_threshold)[0]

        detections: list[Detection] = []
        for anchor in keep:
            cx, cy, width, height = (float(value) for value in rows[:BOX_CHANNELS, anchor])
            confidence = min(1.0, max(0.0, float(best_scores[anchor])))
            detections.append(
                Detection(
                    confidence=confidence,
                    bounding_box=BoundingBox.from_center(cx, cy, width, height),
                    label=self.resolve_label(int(best_classes[anchor])),
                )
            )
        return detections

    def resolve_label(self, class_index: int) -> str:
        if self.num_classes == 1:
            return self._domain_label
        return self._labels.get(class_index, UNKNOWN_LABEL)


__all__ = ["TensorCodec", "DEFAULT_LABEL", "UNKNOWN_LABEL"]
