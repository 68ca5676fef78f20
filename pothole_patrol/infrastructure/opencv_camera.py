from __future__ import annotations

import time

import cv2

from ..domain.camera import Frame, Resolution
from ..shared.errors import InfrastructureError


class OpenCvVideoSource:
    """Video source over a camera index or a video file."""

    def __init__(self, capture: cv2.VideoCapture, loop: bool = False) -> None:
        self._capture = capture
        self._loop = loop

    @property
    def resolution(self) -> Resolution:
        width = int(self._capture.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)
        height = int(self._capture.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)
        return Resolution(width, height)

    def read(self) -> Frame | None:
        ret, frame = self._capture.read()
        if not ret and self._loop:
            self._capture.set(cv2.CAP_PROP_POS_FRAMES, 0)
            ret, frame = self._capture.read()
        if not ret:
            return None
        return Frame(data=frame, timestamp=time.time())

    def close(self) -> None:
        self._capture.release()


def open_camera(index: int, resolution: Resolution, target_fps: float) -> OpenCvVideoSource:
    capture = cv2.VideoCapture(index)
    if not capture.isOpened():
        backend = getattr(cv2, "CAP_V4L2", None)
        if backend is not None:
            capture = cv2.VideoCapture(index, backend)
    if not capture.isOpened():
        raise InfrastructureError(f"Unable to open camera index {index}")

    capture.set(cv2.CAP_PROP_FRAME_WIDTH, resolution.width)
    capture.set(cv2.CAP_PROP_FRAME_HEIGHT, resolution.height)
    capture.set(cv2.CAP_PROP_FPS, target_fps)
    return OpenCvVideoSource(capture)


def open_video_file(path: str, loop: bool = False) -> OpenCvVideoSource:
    capture = cv2.VideoCapture(path)
    if not capture.isOpened():
        raise InfrastructureError(f"Unable to open video file {path}")
    return OpenCvVideoSource(capture, loop=loop)
