"""Session candidates, the reportable events of a patrol."""

from __future__ import annotations

import dataclasses
import enum
from dataclasses import dataclass, field
from typing import Optional

from ..shared.errors import InvalidTransitionError
from .detection import Detection
from .proof import NoProof, ProofState


class ReportStatus(str, enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    PUBLISHED = "published"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)


_STATUS_ORDER = (ReportStatus.PENDING, ReportStatus.VERIFIED, ReportStatus.PUBLISHED)


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    address: Optional[str] = None

    def __post_init__(self) -> None:
        if not (-90.0 <= self.latitude <= 90.0):
            raise ValueError(f"latitude out of range: {self.latitude}")
        if not (-180.0 <= self.longitude <= 180.0):
            raise ValueError(f"longitude out of range: {self.longitude}")


@dataclass(frozen=True)
class CapturedImage:
    """Compressed still as a data URL plus the decoded bytes once needed."""

    encoded: str
    raw_bytes: Optional[bytes] = field(default=None, repr=False)


@dataclass(frozen=True)
class ArchiveRef:
    content_address: str
    upload_timestamp: int
    metadata_address: Optional[str] = None


@dataclass(frozen=True)
class SessionCandidate:
    id: str
    timestamp: int
    location: Location
    image: CapturedImage
    detection: Detection
    proof: ProofState = NoProof()
    status: ReportStatus = ReportStatus.PENDING
    archive_ref: Optional[ArchiveRef] = None
    manual: bool = False

    def advance(self, status: ReportStatus, **changes) -> "SessionCandidate":
        """Return a copy moved forward to ``status``.

        Moving to the current status is allowed so the same transition can be
        replayed; moving backwards raises :class:`InvalidTransitionError`.
        """

        if status.rank < self.status.rank:
            raise InvalidTransitionError(
                f"Report {self.id} cannot move from {self.status.value} to {status.value}"
            )
        return dataclasses.replace(self, status=status, **changes)

    def with_raw_bytes(self, data: bytes) -> "SessionCandidate":
        return dataclasses.replace(self, image=CapturedImage(self.image.encoded, data))


def candidate_id(timestamp: int) -> str:
    return f"report-{timestamp}"


__all__ = [
    "ArchiveRef",
    "CapturedImage",
    "Location",
    "ReportStatus",
    "SessionCandidate",
    "candidate_id",
]
