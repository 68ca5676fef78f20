from __future__ import annotations

import dataclasses
from typing import Callable, TypeVar

from ..domain.camera import VideoSource
from ..domain.events import ErrorRaised, PatrolStateChanged, SessionRecorded, SubmissionFinished
from ..domain.report import ReportStatus, SessionCandidate
from ..domain.session import PatrolSession, PatrolState, SessionStatus
from ..infrastructure.session_history import SessionHistory
from ..shared.bus import EventBus
from ..shared.errors import InvalidTransitionError, SubmissionAbortedError
from ..shared.scheduling import Clock, SystemClock, now_ms
from .batch_submission import BatchSubmissionCoordinator, SubmissionResult
from .detection_scheduler import ERROR_TOPIC, DetectionScheduler, Detector
from .patrol_session import PatrolSessionMachine

STATE_TOPIC = "patrol.state"
SESSION_TOPIC = "patrol.session"
SUBMISSION_TOPIC = "patrol.submission"

T = TypeVar("T")


class PatrolController:
    """Runs the patrol lifecycle on top of the pure :class:`PatrolSessionMachine`.

    The machine decides whether a transition is legal; the controller performs
    the side effects that go with it (polling, history, submission) and
    publishes what happened on the bus.
    """

    def __init__(
        self,
        machine: PatrolSessionMachine,
        scheduler: DetectionScheduler,
        coordinator: BatchSubmissionCoordinator,
        history: SessionHistory,
        detector: Detector,
        bus: EventBus,
        logger,
        clock: Clock | None = None,
        confidence_threshold: float = 0.6,
        poll_interval_ms: int = 1000,
    ) -> None:
        self._machine = machine
        self._scheduler = scheduler
        self._coordinator = coordinator
        self._history = history
        self._detector = detector
        self._bus = bus
        self._logger = logger
        self._clock = clock or SystemClock()
        self._confidence_threshold = confidence_threshold
        self._poll_interval_ms = poll_interval_ms
        self._source: VideoSource | None = None

    @property
    def state(self) -> PatrolState:
        return self._machine.state

    @property
    def candidates(self) -> tuple[SessionCandidate, ...]:
        return self._machine.candidates

    @property
    def session_id(self) -> str | None:
        return self._machine.session_id

    def can_submit(self) -> bool:
        return self._machine.can_submit()

    # ------------------------------------------------------------------
    async def start_patrol(self, source: VideoSource) -> None:
        self._transition(lambda: self._machine.start(now_ms(self._clock), self._confidence_threshold))
        self._source = source
        self._begin_polling(source)
        self._logger.info("patrol.started", session_id=self._machine.session_id)

    async def stop_patrol(self) -> PatrolSession:
        if self._machine.state is not PatrolState.PATROLLING:
            raise InvalidTransitionError(f"Cannot stop a patrol while {self._machine.state.value}")
        await self._scheduler.stop()
        session = self._transition(lambda: self._machine.stop(now_ms(self._clock)))
        self._record(self._reviewed_session(session))
        self._logger.info("patrol.stopped", session_id=session.id, pothole_count=session.pothole_count)
        return session

    async def resume_patrol(self, source: VideoSource | None = None) -> None:
        source = source or self._source
        if source is None:
            raise InvalidTransitionError("No video source to resume the patrol with")
        self._transition(self._machine.resume)
        self._source = source
        self._begin_polling(source)
        self._logger.info("patrol.resumed", session_id=self._machine.session_id)

    def remove_candidate(self, candidate_id: str) -> SessionCandidate:
        removed = self._machine.remove_candidate(candidate_id)
        self._record(self._reviewed_session(self._machine.snapshot()))
        self._logger.info("patrol.candidate_removed", candidate_id=candidate_id)
        return removed

    def discard_session(self) -> None:
        session_id = self._machine.session_id
        self._transition(self._machine.discard)
        self._logger.info("patrol.discarded", session_id=session_id)

    async def manual_capture(self, source: VideoSource | None = None) -> SessionCandidate | None:
        if self._machine.state is not PatrolState.PATROLLING:
            raise InvalidTransitionError("Manual capture is only available while patrolling")
        source = source or self._source
        if source is None:
            raise InvalidTransitionError("No video source to capture from")
        return await self._scheduler.capture_manual(source, self._machine)

    async def submit(self, beneficiary_address: str | None = None) -> SubmissionResult:
        session = self._transition(self._machine.begin_submission)
        try:
            result = await self._coordinator.submit(session, beneficiary_address)
        except SubmissionAbortedError as exc:
            self._transition(self._machine.fail_submission)
            self._logger.warning("patrol.submission_aborted", stage=exc.stage, error=str(exc))
            self._bus.publish(ERROR_TOPIC, ErrorRaised(f"Submission failed at the {exc.stage} stage: {exc}", exc))
            raise
        except Exception:
            self._transition(self._machine.fail_submission)
            raise

        self._transition(lambda: self._machine.complete_submission(result.failed))
        self._record(self._submitted_session(session, result, beneficiary_address))
        self._bus.publish(SUBMISSION_TOPIC, SubmissionFinished(result))
        if not result.complete:
            self._bus.publish(
                ERROR_TOPIC,
                ErrorRaised(f"{result.total - result.uploaded_count} of {result.total} reports were not posted"),
            )
        return result

    async def close(self) -> None:
        await self._scheduler.stop()

    # ------------------------------------------------------------------
    def _begin_polling(self, source: VideoSource) -> None:
        if not self._detector.is_ready():
            self._logger.warning("patrol.manual_only", reason="model_not_ready")
            return
        self._scheduler.start(source, self._machine, self._confidence_threshold, self._poll_interval_ms)

    def _transition(self, action: Callable[[], T]) -> T:
        previous = self._machine.state
        outcome = action()
        current = self._machine.state
        if current is not previous:
            self._logger.debug("patrol.state_changed", previous=previous.value, current=current.value)
            self._bus.publish(STATE_TOPIC, PatrolStateChanged(previous, current))
        return outcome

    def _record(self, session: PatrolSession) -> None:
        self._history.save_session(session)
        self._bus.publish(SESSION_TOPIC, SessionRecorded(session))

    def _reviewed_session(self, session: PatrolSession) -> PatrolSession:
        """History entry for ``session`` keeping reports an earlier attempt already published."""

        stored = self._history.get_session(session.id)
        if stored is None:
            return session
        published = [c for c in stored.candidates if c.status is ReportStatus.PUBLISHED]
        if not published:
            return session
        pending_ids = {candidate.id for candidate in session.candidates}
        kept = [candidate for candidate in published if candidate.id not in pending_ids]
        candidates = tuple(sorted(kept + list(session.candidates), key=lambda candidate: candidate.timestamp))
        return dataclasses.replace(
            session,
            candidates=candidates,
            status=SessionStatus.PENDING_UPLOAD if session.candidates else SessionStatus.UPLOADED,
            archive_ref=stored.archive_ref,
            beneficiary_address=stored.beneficiary_address,
        )

    def _submitted_session(
        self,
        session: PatrolSession,
        result: SubmissionResult,
        beneficiary_address: str | None,
    ) -> PatrolSession:
        stored = self._history.get_session(session.id)
        merged = {candidate.id: candidate for candidate in (stored.candidates if stored else ())}
        merged.update((candidate.id, candidate) for candidate in result.published + result.failed)
        candidates = tuple(sorted(merged.values(), key=lambda candidate: candidate.timestamp))
        return dataclasses.replace(
            session,
            candidates=candidates,
            status=SessionStatus.UPLOADED if result.complete else SessionStatus.PENDING_UPLOAD,
            archive_ref=result.archive_ref,
            beneficiary_address=beneficiary_address,
        )


__all__ = ["PatrolController", "SESSION_TOPIC", "STATE_TOPIC", "SUBMISSION_TOPIC"]
