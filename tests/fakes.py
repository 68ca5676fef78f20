"""In-memory stand-ins for the collaborators of the patrol pipeline."""

from __future__ import annotations

import asyncio
import base64
from typing import Any, Mapping, Sequence

import numpy as np

from pothole_patrol.crosscutting.logging_setup import get_logger
from pothole_patrol.domain.camera import Frame
from pothole_patrol.domain.collaborators import ArchiveFile, VerificationOutcome
from pothole_patrol.domain.detection import BoundingBox, Detection
from pothole_patrol.domain.report import CapturedImage, Location, SessionCandidate, candidate_id
from pothole_patrol.shared.errors import ArchiveUploadError, GeolocationError, ReportSubmissionError

START_EPOCH = 1_700_000_000.0
FALLBACK = Location(-34.603722, -58.381592)
TINY_JPEG = "data:image/jpeg;base64," + base64.b64encode(b"\xff\xd8\xff\xe0fake-jpeg\xff\xd9").decode("ascii")


def make_logger(name: str = "tests"):
    return get_logger(name)


class FakeClock:
    """Virtual clock: ``sleep`` advances time instead of waiting."""

    def __init__(self, start: float = START_EPOCH) -> None:
        self._now = start
        self._monotonic = 0.0
        self.sleeps: list[float] = []

    def time(self) -> float:
        return self._now

    def monotonic(self) -> float:
        return self._monotonic

    def advance(self, seconds: float) -> None:
        self._now += seconds
        self._monotonic += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(max(0.0, seconds))
        await asyncio.sleep(0)


def make_frame(value: int = 128, height: int = 48, width: int = 64) -> np.ndarray:
    frame = np.full((height, width, 3), value, dtype=np.uint8)
    frame[: height // 2, : width // 2] = (0, 0, 255)
    return frame


class FrameSource:
    """Video source replaying a fixed list of frames, then ``None``."""

    def __init__(self, frames: Sequence[np.ndarray | None], repeat_last: bool = False) -> None:
        self._frames = list(frames)
        self._repeat_last = repeat_last
        self.reads = 0
        self.closed = False

    @property
    def exhausted(self) -> bool:
        return self.reads >= len(self._frames)

    def read(self) -> Frame | None:
        index = self.reads
        self.reads += 1
        if index >= len(self._frames):
            if not self._repeat_last or not self._frames:
                return None
            index = len(self._frames) - 1
        data = self._frames[index]
        if data is None:
            return None
        return Frame(data=data, timestamp=float(index))

    def close(self) -> None:
        self.closed = True


def detection(confidence: float = 0.9, label: str = "pothole") -> Detection:
    return Detection(confidence=confidence, bounding_box=BoundingBox(10.0, 20.0, 30.0, 40.0), label=label)


class ScriptedDetector:
    """Detector answering each call with the next scripted result.

    A script entry is a list of detections or an exception to raise. Once the
    script runs out every call returns no detections.
    """

    def __init__(self, script: Sequence[Sequence[Detection] | Exception] = (), ready: bool = True) -> None:
        self._script = list(script)
        self._ready = ready
        self.calls = 0
        self.thresholds: list[float] = []

    def is_ready(self) -> bool:
        return self._ready

    def detect(self, source: Frame, confidence_threshold: float) -> list[Detection]:
        index = self.calls
        self.calls += 1
        self.thresholds.append(confidence_threshold)
        if index >= len(self._script):
            return []
        result = self._script[index]
        if isinstance(result, Exception):
            raise result
        return list(result)


class FixedGeolocation:
    def __init__(self, latitude: float = 40.4168, longitude: float = -3.7038) -> None:
        self.location = Location(latitude, longitude)
        self.calls = 0

    async def get_current_position(self, timeout: float) -> Location:
        self.calls += 1
        return self.location


class FailingGeolocation:
    async def get_current_position(self, timeout: float) -> Location:
        raise GeolocationError("permission denied")


class HangingGeolocation:
    async def get_current_position(self, timeout: float) -> Location:
        await asyncio.sleep(60)
        raise AssertionError("unreachable")


class FakeProofProvider:
    def __init__(self, available: bool = True, error: Exception | None = None) -> None:
        self._available = available
        self._error = error
        self.requests: list[tuple[str, str]] = []

    def is_available(self) -> bool:
        return self._available

    async def request_proof(self, signal: str, action: str) -> Mapping[str, Any]:
        self.requests.append((signal, action))
        if self._error is not None:
            raise self._error
        return {"nullifier_hash": "0xabc", "merkle_root": "0xdef", "proof": "0x123"}


class FakeProofVerifier:
    def __init__(self, success: bool = True, reason: str | None = None) -> None:
        self._success = success
        self._reason = reason
        self.calls: list[tuple[Mapping[str, Any], str, str]] = []

    async def verify_proof(self, payload: Mapping[str, Any], signal: str, action: str) -> VerificationOutcome:
        self.calls.append((payload, signal, action))
        return VerificationOutcome(success=self._success, reason=self._reason)


class FakeArchive:
    def __init__(self, address: str = "bafybatch", error: Exception | None = None) -> None:
        self._address = address
        self._error = error
        self.collections: list[tuple[str, list[ArchiveFile]]] = []

    async def upload_collection(self, files: Sequence[ArchiveFile], name: str) -> str:
        self.collections.append((name, list(files)))
        if self._error is not None:
            raise self._error
        return self._address

    async def upload_bytes(self, data: bytes, name: str) -> str:
        if self._error is not None:
            raise self._error
        if not data:
            raise ArchiveUploadError("empty")
        return f"{self._address}-{name}"


class FakeBackend:
    """Report store that fails the posts whose 1-based position is in ``fail_at``."""

    def __init__(self, fail_at: Sequence[int] = ()) -> None:
        self._fail_at = set(fail_at)
        self.attempts = 0
        self.posted: list[dict[str, Any]] = []
        self.files: list[tuple[bytes, str, str]] = []

    async def post_report(self, report: Mapping[str, Any], image: bytes, filename: str, mime_type: str) -> Mapping[str, Any]:
        self.attempts += 1
        if self.attempts in self._fail_at:
            raise ReportSubmissionError(f"network down for {report['id']}")
        self.posted.append(dict(report))
        self.files.append((image, filename, mime_type))
        return report

    async def list_reports(self) -> Sequence[Mapping[str, Any]]:
        return list(self.posted)

    async def update_report(self, report_id: str, updates: Mapping[str, Any]) -> Mapping[str, Any]:
        for report in self.posted:
            if report["id"] == report_id:
                report.update(updates)
                return report
        raise ReportSubmissionError(report_id)


def make_candidate(
    timestamp: int,
    confidence: float = 0.9,
    latitude: float = -34.60372,
    longitude: float = -58.38159,
    manual: bool = False,
    encoded: str = TINY_JPEG,
) -> SessionCandidate:
    return SessionCandidate(
        id=candidate_id(timestamp),
        timestamp=timestamp,
        location=Location(latitude, longitude),
        image=CapturedImage(encoded=encoded),
        detection=detection(confidence),
        manual=manual,
    )


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll ``predicate`` on the real event loop clock until it holds."""

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition was not met in time")
        await asyncio.sleep(0.005)
