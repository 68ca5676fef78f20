from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional, Sequence

from .report import ArchiveRef, SessionCandidate


class PatrolState(str, enum.Enum):
    IDLE = "idle"
    PATROLLING = "patrolling"
    REVIEWING = "reviewing"
    SUBMITTING = "submitting"


class SessionStatus(str, enum.Enum):
    PENDING_UPLOAD = "pending_upload"
    UPLOADED = "uploaded"


@dataclass(frozen=True)
class PatrolSession:
    """Snapshot of one contiguous capture run, as kept in local history."""

    id: str
    start_time: int
    end_time: int
    candidates: Sequence[SessionCandidate]
    status: SessionStatus = SessionStatus.PENDING_UPLOAD
    archive_ref: Optional[ArchiveRef] = None
    beneficiary_address: Optional[str] = None

    def __post_init__(self) -> None:
        if self.end_time < self.start_time:
            raise ValueError("end_time must not precede start_time")

    @property
    def pothole_count(self) -> int:
        return len(self.candidates)


def session_id(start_time: int) -> str:
    return f"session-{start_time}"


__all__ = ["PatrolSession", "PatrolState", "SessionStatus", "session_id"]
