"""Still-image capture and data-URL helpers."""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass, field
from urllib.parse import unquote_to_bytes

import cv2
import numpy as np

from ..domain.camera import Frame, VideoSource
from ..shared.errors import ImageEncodingError

_DATA_URL = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)(?P<params>(?:;[\w.+-]+=[^;,]*)*)(?P<base64>;base64)?,(?P<payload>.*)$",
    re.DOTALL,
)

_ENCODERS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


@dataclass(frozen=True)
class RawImage:
    mime_type: str
    data: bytes = field(repr=False)

    @property
    def extension(self) -> str:
        return _ENCODERS.get(self.mime_type, ".bin")


def encode_still_image(frame: Frame | np.ndarray, quality: float = 0.9, mime_type: str = "image/jpeg") -> str:
    """Encode a BGR frame at its native resolution as a data URL."""

    data = frame.data if isinstance(frame, Frame) else frame
    extension = _ENCODERS.get(mime_type)
    if extension is None:
        raise ImageEncodingError(f"Unsupported image type {mime_type!r}")
    if not (0 < quality <= 1):
        raise ImageEncodingError("quality must be within (0, 1]")
    if data is None or data.size == 0:
        raise ImageEncodingError("Cannot encode an empty frame")

    params: list[int] = []
    if mime_type == "image/jpeg":
        params = [cv2.IMWRITE_JPEG_QUALITY, int(round(quality * 100))]
    elif mime_type == "image/webp":
        params = [cv2.IMWRITE_WEBP_QUALITY, int(round(quality * 100))]
    ok, buffer = cv2.imencode(extension, data, params)
    if not ok:
        raise ImageEncodingError(f"OpenCV could not encode the frame as {mime_type}")
    payload = base64.b64encode(buffer.tobytes()).decode("ascii")
    return f"data:{mime_type};base64,{payload}"


def capture_still_image(source: VideoSource, quality: float = 0.9, mime_type: str = "image/jpeg") -> str:
    """Grab the current frame from ``source`` and encode it."""

    frame = source.read()
    if frame is None:
        raise ImageEncodingError("The video source has no frame available")
    return encode_still_image(frame, quality=quality, mime_type=mime_type)


def to_raw_bytes(encoded_image: str) -> RawImage:
    """Decode a data URL into its MIME type and raw bytes."""

    if not isinstance(encoded_image, str):
        raise ImageEncodingError(f"Expected a data URL string, got {type(encoded_image)!r}")
    match = _DATA_URL.match(encoded_image.strip())
    if match is None:
        raise ImageEncodingError("The image is not a valid data URL")

    payload = match.group("payload")
    if match.group("base64"):
        normalized = "".join(payload.split())
        try:
            data = base64.b64decode(normalized, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ImageEncodingError("The data URL payload is not valid base64") from exc
    else:
        data = unquote_to_bytes(payload)

    if not data:
        raise ImageEncodingError("The data URL carries no image bytes")
    return RawImage(mime_type=match.group("mime").lower(), data=data)


__all__ = ["RawImage", "capture_still_image", "encode_still_image", "to_raw_bytes"]
