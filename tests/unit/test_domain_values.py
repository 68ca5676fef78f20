from __future__ import annotations

import pytest

from fakes import detection, make_candidate
from pothole_patrol.domain.detection import BoundingBox, Detection, best_detection
from pothole_patrol.domain.proof import NoProof, PendingProof, VerifiedProof, verified_payload
from pothole_patrol.domain.report import ArchiveRef, Location, ReportStatus
from pothole_patrol.domain.session import PatrolSession, SessionStatus, session_id
from pothole_patrol.shared.errors import InvalidTransitionError


def test_bounding_box_from_center_is_corner_form() -> None:
    box = BoundingBox.from_center(100.0, 50.0, 40.0, 20.0)

    assert box.as_tuple() == (80.0, 40.0, 40.0, 20.0)
    assert BoundingBox.empty().as_tuple() == (0.0, 0.0, 0.0, 0.0)


def test_detection_rejects_confidence_outside_unit_interval() -> None:
    with pytest.raises(ValueError):
        Detection(confidence=1.2, bounding_box=BoundingBox.empty(), label="pothole")


def test_best_detection_prefers_highest_confidence_and_first_on_ties() -> None:
    low, high, tie = detection(0.61), detection(0.92), detection(0.92, label="tie")

    assert best_detection([low, high, tie]) is high
    assert best_detection([]) is None


def test_location_validates_ranges() -> None:
    with pytest.raises(ValueError):
        Location(latitude=95.0, longitude=0.0)
    with pytest.raises(ValueError):
        Location(latitude=0.0, longitude=-181.0)


def test_report_status_only_moves_forward() -> None:
    candidate = make_candidate(1_000)

    verified = candidate.advance(ReportStatus.VERIFIED)
    published = verified.advance(ReportStatus.PUBLISHED, archive_ref=ArchiveRef("bafy", 2_000))

    assert published.status is ReportStatus.PUBLISHED
    assert published.archive_ref == ArchiveRef("bafy", 2_000)
    assert published.advance(ReportStatus.PUBLISHED) == published
    with pytest.raises(InvalidTransitionError):
        published.advance(ReportStatus.PENDING)


def test_only_verified_proofs_expose_a_payload() -> None:
    payload = {"nullifier_hash": "0x1"}

    assert verified_payload(NoProof()) is None
    assert verified_payload(PendingProof(payload, "signal")) is None
    assert verified_payload(VerifiedProof(payload, "signal", verified_at=5)) == payload


def test_patrol_session_requires_ordered_times_and_counts_candidates() -> None:
    candidates = (make_candidate(1_001), make_candidate(1_002))
    session = PatrolSession(id=session_id(1_000), start_time=1_000, end_time=1_500, candidates=candidates)

    assert session.id == "session-1000"
    assert session.pothole_count == 2
    assert session.status is SessionStatus.PENDING_UPLOAD
    with pytest.raises(ValueError):
        PatrolSession(id="session-2", start_time=2, end_time=1, candidates=())
