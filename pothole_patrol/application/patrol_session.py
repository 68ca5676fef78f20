"""Patrol lifecycle state machine.

The machine is pure: it holds the patrol state and the candidate list and
validates transitions, but it never starts timers, touches the camera or
talks to the network. :class:`~pothole_patrol.application.patrol_controller.PatrolController`
drives it and performs the side effects.

::

    Idle -> Patrolling -> Reviewing -> Submitting -> Idle
                ^             |             |
                +-- resume ---+             +-> Reviewing (retry)
"""

from __future__ import annotations

from typing import Sequence

from ..domain.report import SessionCandidate
from ..domain.session import PatrolSession, PatrolState, SessionStatus, session_id
from ..shared.errors import InvalidTransitionError


class PatrolSessionMachine:
    def __init__(self) -> None:
        self._state = PatrolState.IDLE
        self._candidates: list[SessionCandidate] = []
        self._start_time: int | None = None
        self._end_time: int | None = None
        self._confidence_threshold = 0.0

    # ------------------------------------------------------------------
    # Queries
    @property
    def state(self) -> PatrolState:
        return self._state

    @property
    def candidates(self) -> tuple[SessionCandidate, ...]:
        return tuple(self._candidates)

    @property
    def start_time(self) -> int | None:
        return self._start_time

    @property
    def confidence_threshold(self) -> float:
        return self._confidence_threshold

    @property
    def session_id(self) -> str | None:
        return session_id(self._start_time) if self._start_time is not None else None

    def last_candidate(self) -> SessionCandidate | None:
        return self._candidates[-1] if self._candidates else None

    def can_submit(self) -> bool:
        return self._state is PatrolState.REVIEWING and bool(self._candidates)

    def snapshot(self) -> PatrolSession:
        if self._start_time is None:
            raise InvalidTransitionError("No patrol has been started")
        end_time = self._end_time if self._end_time is not None else self._start_time
        return PatrolSession(
            id=session_id(self._start_time),
            start_time=self._start_time,
            end_time=max(end_time, self._start_time),
            candidates=tuple(self._candidates),
            status=SessionStatus.PENDING_UPLOAD,
        )

    # ------------------------------------------------------------------
    # Transitions
    def start(self, now_ms: int, confidence_threshold: float) -> None:
        self._require(PatrolState.IDLE, "start a patrol")
        self._candidates.clear()
        self._start_time = now_ms
        self._end_time = None
        self._confidence_threshold = confidence_threshold
        self._state = PatrolState.PATROLLING

    def stop(self, now_ms: int) -> PatrolSession:
        self._require(PatrolState.PATROLLING, "stop a patrol")
        self._end_time = now_ms
        self._state = PatrolState.REVIEWING
        return self.snapshot()

    def resume(self) -> None:
        self._require(PatrolState.REVIEWING, "resume a patrol")
        self._end_time = None
        self._state = PatrolState.PATROLLING

    def append(self, candidate: SessionCandidate) -> bool:
        """Add a captured candidate; returns ``False`` once the patrol is no longer active."""

        if self._state is not PatrolState.PATROLLING:
            return False
        if not candidate.manual and candidate.detection.confidence < self._confidence_threshold:
            raise ValueError(
                f"Candidate {candidate.id} confidence {candidate.detection.confidence:.2f} "
                f"is below the session threshold {self._confidence_threshold:.2f}"
            )
        last = self.last_candidate()
        if last is not None and candidate.timestamp <= last.timestamp:
            raise ValueError(f"Candidate {candidate.id} is not newer than {last.id}")
        self._candidates.append(candidate)
        return True

    def remove_candidate(self, candidate_id: str) -> SessionCandidate:
        self._require(PatrolState.REVIEWING, "remove a candidate")
        for index, candidate in enumerate(self._candidates):
            if candidate.id == candidate_id:
                return self._candidates.pop(index)
        raise KeyError(candidate_id)

    def discard(self) -> None:
        self._require(PatrolState.REVIEWING, "discard a session")
        self._reset()

    def begin_submission(self) -> PatrolSession:
        self._require(PatrolState.REVIEWING, "submit a session")
        if not self._candidates:
            raise InvalidTransitionError("Cannot submit a session without candidates")
        self._state = PatrolState.SUBMITTING
        return self.snapshot()

    def complete_submission(self, retained: Sequence[SessionCandidate] = ()) -> None:
        """Finish a submission that reached the post stage.

        ``retained`` holds candidates whose post failed. With none left the
        machine returns to idle; otherwise it stays in review holding only the
        failed candidates so they can be retried.
        """

        self._require(PatrolState.SUBMITTING, "complete a submission")
        if not retained:
            self._reset()
            return
        updates = {candidate.id: candidate for candidate in retained}
        self._candidates = [updates[c.id] for c in self._candidates if c.id in updates]
        self._state = PatrolState.REVIEWING

    def fail_submission(self) -> None:
        self._require(PatrolState.SUBMITTING, "fail a submission")
        self._state = PatrolState.REVIEWING

    # ------------------------------------------------------------------
    def _require(self, expected: PatrolState, action: str) -> None:
        if self._state is not expected:
            raise InvalidTransitionError(
                f"Cannot {action} while {self._state.value}; expected {expected.value}"
            )

    def _reset(self) -> None:
        self._candidates.clear()
        self._start_time = None
        self._end_time = None
        self._state = PatrolState.IDLE


__all__ = ["PatrolSessionMachine"]
