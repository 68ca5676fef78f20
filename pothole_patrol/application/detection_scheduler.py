from __future__ import annotations

import asyncio
import functools
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Protocol, Sequence

from ..domain.camera import Frame, VideoSource
from ..domain.detection import BoundingBox, Detection, best_detection
from ..domain.events import CandidateCaptured, ErrorRaised
from ..domain.collaborators import GeolocationProvider
from ..domain.report import CapturedImage, Location, SessionCandidate, candidate_id
from ..infrastructure.frame_capture import encode_still_image
from ..infrastructure.tensor_codec import DEFAULT_LABEL
from ..shared.bus import EventBus
from ..shared.errors import ImageEncodingError, TensorLayoutError
from ..shared.scheduling import Clock, IntervalScheduler, MonotonicStamp, SystemClock, now_ms

CANDIDATE_TOPIC = "patrol.candidate"
ERROR_TOPIC = "errors"


class Detector(Protocol):
    def is_ready(self) -> bool:
        ...

    def detect(self, source: Frame, confidence_threshold: float) -> Sequence[Detection]:
        ...


class CandidateSink(Protocol):
    @property
    def candidates(self) -> Sequence[SessionCandidate]:
        ...

    def last_candidate(self) -> SessionCandidate | None:
        ...

    def append(self, candidate: SessionCandidate) -> bool:
        ...


@dataclass
class _ActivePatrol:
    generation: int
    source: VideoSource
    sink: CandidateSink
    confidence_threshold: float


class DetectionScheduler:
    """Fixed-delay polling loop turning detections into session candidates.

    One poll runs at a time: the next tick is scheduled ``poll_interval``
    after the previous one finished. Every poll carries the generation it
    started under; :meth:`cancel` bumps the generation, so a poll that resumes
    after cancellation drops its result instead of appending it.
    """

    def __init__(
        self,
        detector: Detector,
        geolocation: GeolocationProvider,
        logger,
        *,
        clock: Clock | None = None,
        bus: EventBus | None = None,
        debounce_ms: int = 2000,
        geolocation_timeout: float = 2.0,
        fallback_location: Location = Location(-34.603722, -58.381592),
        image_quality: float = 0.9,
        label: str = DEFAULT_LABEL,
        executor: Executor | None = None,
    ) -> None:
        self._detector = detector
        self._geolocation = geolocation
        self._logger = logger
        self._clock = clock or SystemClock()
        self._bus = bus
        self._debounce_ms = debounce_ms
        self._geolocation_timeout = geolocation_timeout
        self._fallback_location = fallback_location
        self._image_quality = image_quality
        self._label = label
        self._executor = executor
        self._stamps = MonotonicStamp(self._clock)
        self._generation = 0
        self._active: _ActivePatrol | None = None
        self._task: asyncio.Task | None = None
        self.fatal_error: Exception | None = None

    @property
    def is_active(self) -> bool:
        return self._active is not None

    @property
    def fallback_location(self) -> Location:
        return self._fallback_location

    # ------------------------------------------------------------------
    # Lifecycle
    def activate(self, source: VideoSource, sink: CandidateSink, confidence_threshold: float) -> int:
        """Mark a patrol active without starting the timer loop."""

        if self._active is not None:
            raise RuntimeError("Detection scheduler is already active")
        self._generation += 1
        self._active = _ActivePatrol(self._generation, source, sink, confidence_threshold)
        self.fatal_error = None
        return self._generation

    def start(
        self,
        source: VideoSource,
        sink: CandidateSink,
        confidence_threshold: float,
        poll_interval_ms: int,
    ) -> asyncio.Task:
        generation = self.activate(source, sink, confidence_threshold)
        interval = poll_interval_ms / 1000.0
        self._task = asyncio.get_running_loop().create_task(
            self._run(generation, interval),
            name="DetectionScheduler",
        )
        self._logger.info(
            "scheduler.started",
            generation=generation,
            poll_interval_ms=poll_interval_ms,
            confidence_threshold=confidence_threshold,
        )
        return self._task

    def cancel(self) -> None:
        """Go idle now; the pending tick is cancelled and late results are dropped."""

        if self._active is None:
            return
        self._generation += 1
        self._active = None
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
        self._logger.info("scheduler.stopped", generation=self._generation)

    async def stop(self) -> None:
        task = self._task
        self.cancel()
        if task is not None and task is not asyncio.current_task():
            try:
                await task
            except asyncio.CancelledError:
                pass

    # ------------------------------------------------------------------
    # Polling
    async def poll_once(self) -> SessionCandidate | None:
        """Run a single detection tick against the active patrol."""

        active = self._active
        if active is None:
            return None
        return await self._poll(active)

    async def _run(self, generation: int, interval: float) -> None:
        scheduler = IntervalScheduler(interval, self._clock)
        while not self._stale(generation):
            await self._clock.sleep(scheduler.timeout())
            active = self._active
            if active is None or active.generation != generation:
                break
            try:
                await self._poll(active)
            except TensorLayoutError as exc:
                self.fatal_error = exc
                self._logger.error("scheduler.layout_error", error=str(exc))
                self._publish(ERROR_TOPIC, ErrorRaised(str(exc), exc, retryable=False))
                if not self._stale(generation):
                    self._active = None
                    self._generation += 1
                return
            except Exception as exc:
                self._logger.exception("scheduler.poll_failed", error=str(exc))
                self._publish(ERROR_TOPIC, ErrorRaised("Detection failed", exc))
            scheduler.executed()

    async def _poll(self, active: _ActivePatrol) -> SessionCandidate | None:
        loop = asyncio.get_running_loop()
        frame = await loop.run_in_executor(self._executor, active.source.read)
        if frame is None:
            self._logger.debug("scheduler.no_frame")
            return None

        detections = await loop.run_in_executor(
            self._executor,
            self._detector.detect,
            frame,
            active.confidence_threshold,
        )
        if self._stale(active.generation):
            self._logger.debug("scheduler.result_discarded", reason="stopped")
            return None

        best = best_detection(d for d in detections if d.confidence >= active.confidence_threshold)
        if best is None:
            return None
        if self._debounced(active.sink, now_ms(self._clock)):
            return None

        location = await self._locate()
        encoded = await self._encode(frame)
        return self._accept(active.sink, best, encoded, location, generation=active.generation)

    async def capture_manual(self, source: VideoSource, sink: CandidateSink) -> SessionCandidate | None:
        """User-triggered capture that bypasses inference and the debounce window."""

        loop = asyncio.get_running_loop()
        frame = await loop.run_in_executor(self._executor, source.read)
        if frame is None:
            raise ImageEncodingError("The video source has no frame available")
        location = await self._locate()
        encoded = await self._encode(frame)
        detection = Detection(confidence=1.0, bounding_box=BoundingBox.empty(), label=self._label)
        return self._accept(sink, detection, encoded, location, manual=True)

    async def _encode(self, frame: Frame) -> str:
        # full-resolution JPEG encode
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor,
            functools.partial(encode_still_image, frame, quality=self._image_quality),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    def _stale(self, generation: int) -> bool:
        return self._generation != generation

    def _debounced(self, sink: CandidateSink, timestamp: int) -> bool:
        last = sink.last_candidate()
        if last is not None and timestamp - last.timestamp < self._debounce_ms:
            self._logger.debug(
                "scheduler.debounced",
                since_last_ms=timestamp - last.timestamp,
                window_ms=self._debounce_ms,
            )
            return True
        return False

    async def _locate(self) -> Location:
        try:
            return await asyncio.wait_for(
                self._geolocation.get_current_position(self._geolocation_timeout),
                timeout=self._geolocation_timeout,
            )
        except asyncio.TimeoutError:
            self._logger.warning("scheduler.geolocation_timeout", timeout_s=self._geolocation_timeout)
        except Exception as exc:
            self._logger.warning("scheduler.geolocation_failed", error=str(exc))
        return self._fallback_location

    def _accept(
        self,
        sink: CandidateSink,
        detection: Detection,
        encoded: str,
        location: Location,
        *,
        generation: int | None = None,
        manual: bool = False,
    ) -> SessionCandidate | None:
        if generation is not None and self._stale(generation):
            self._logger.debug("scheduler.result_discarded", reason="stopped")
            return None

        last = sink.last_candidate()
        timestamp = self._stamps.next()
        if last is not None:
            timestamp = max(timestamp, last.timestamp + 1)
        if not manual and self._debounced(sink, timestamp):
            return None

        candidate = SessionCandidate(
            id=candidate_id(timestamp),
            timestamp=timestamp,
            location=location,
            image=CapturedImage(encoded=encoded),
            detection=detection,
            manual=manual,
        )
        if not sink.append(candidate):
            self._logger.debug("scheduler.result_discarded", reason="session_closed")
            return None

        self._logger.info(
            "scheduler.candidate_accepted",
            candidate_id=candidate.id,
            confidence=round(detection.confidence, 3),
            manual=manual,
            latitude=location.latitude,
            longitude=location.longitude,
        )
        self._publish(CANDIDATE_TOPIC, CandidateCaptured(candidate, total=len(sink.candidates)))
        return candidate

    def _publish(self, topic: str, event) -> None:
        if self._bus is not None:
            self._bus.publish(topic, event)


__all__ = ["CANDIDATE_TOPIC", "ERROR_TOPIC", "CandidateSink", "DetectionScheduler", "Detector"]
