from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .report import SessionCandidate
from .session import PatrolSession, PatrolState

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from ..application.batch_submission import SubmissionResult


@dataclass(frozen=True)
class PatrolStateChanged:
    previous: PatrolState
    current: PatrolState


@dataclass(frozen=True)
class CandidateCaptured:
    candidate: SessionCandidate
    total: int


@dataclass(frozen=True)
class SessionRecorded:
    session: PatrolSession


@dataclass(frozen=True)
class SubmissionFinished:
    result: "SubmissionResult"


@dataclass(frozen=True)
class ErrorRaised:
    message: str
    exception: Exception | None = None
    retryable: bool = True
