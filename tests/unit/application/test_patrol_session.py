from __future__ import annotations

import pytest

from fakes import make_candidate
from pothole_patrol.application.patrol_session import PatrolSessionMachine
from pothole_patrol.domain.report import ReportStatus
from pothole_patrol.domain.session import PatrolState, SessionStatus
from pothole_patrol.shared.errors import InvalidTransitionError


def _patrolling(start: int = 1_000, threshold: float = 0.6) -> PatrolSessionMachine:
    machine = PatrolSessionMachine()
    machine.start(start, threshold)
    return machine


def test_full_lifecycle() -> None:
    machine = _patrolling()
    assert machine.state is PatrolState.PATROLLING
    assert machine.append(make_candidate(1_100))

    session = machine.stop(2_000)
    assert machine.state is PatrolState.REVIEWING
    assert (session.id, session.start_time, session.end_time) == ("session-1000", 1_000, 2_000)

    submitted = machine.begin_submission()
    assert machine.state is PatrolState.SUBMITTING
    assert submitted.pothole_count == 1

    machine.complete_submission()
    assert machine.state is PatrolState.IDLE
    assert machine.candidates == ()
    assert machine.session_id is None


def test_stop_with_zero_candidates_yields_pending_empty_session() -> None:
    machine = _patrolling()

    session = machine.stop(1_500)

    assert session.pothole_count == 0
    assert session.status is SessionStatus.PENDING_UPLOAD
    assert not machine.can_submit()
    with pytest.raises(InvalidTransitionError):
        machine.begin_submission()


def test_append_enforces_threshold_and_order() -> None:
    machine = _patrolling(threshold=0.6)
    machine.append(make_candidate(1_100))

    with pytest.raises(ValueError):
        machine.append(make_candidate(1_200, confidence=0.4))
    with pytest.raises(ValueError):
        machine.append(make_candidate(1_100))
    assert machine.append(make_candidate(1_300, confidence=1.0, manual=True))
    assert [c.timestamp for c in machine.candidates] == [1_100, 1_300]


def test_append_outside_patrol_is_refused() -> None:
    machine = _patrolling()
    machine.stop(2_000)

    assert machine.append(make_candidate(2_100)) is False
    assert machine.candidates == ()


def test_resume_keeps_candidates_and_remove_drops_one() -> None:
    machine = _patrolling()
    machine.append(make_candidate(1_100))
    machine.append(make_candidate(1_200))
    machine.stop(1_300)

    machine.resume()
    machine.append(make_candidate(1_400))
    machine.stop(1_500)
    removed = machine.remove_candidate("report-1200")

    assert removed.timestamp == 1_200
    assert [c.id for c in machine.candidates] == ["report-1100", "report-1400"]
    with pytest.raises(KeyError):
        machine.remove_candidate("report-9999")


def test_discard_returns_to_idle() -> None:
    machine = _patrolling()
    machine.append(make_candidate(1_100))
    machine.stop(1_200)

    machine.discard()

    assert machine.state is PatrolState.IDLE
    assert machine.candidates == ()


def test_failed_submission_returns_to_review_with_candidates() -> None:
    machine = _patrolling()
    machine.append(make_candidate(1_100))
    machine.stop(1_200)
    machine.begin_submission()

    machine.fail_submission()

    assert machine.state is PatrolState.REVIEWING
    assert len(machine.candidates) == 1


def test_partial_submission_retains_failed_candidates() -> None:
    machine = _patrolling()
    for ts in (1_100, 1_200, 1_300):
        machine.append(make_candidate(ts))
    machine.stop(1_400)
    machine.begin_submission()
    retry = make_candidate(1_200).advance(ReportStatus.VERIFIED)

    machine.complete_submission([retry])

    assert machine.state is PatrolState.REVIEWING
    assert machine.candidates == (retry,)


@pytest.mark.parametrize(
    "action",
    [
        lambda m: m.stop(1),
        lambda m: m.resume(),
        lambda m: m.discard(),
        lambda m: m.remove_candidate("report-1"),
        lambda m: m.complete_submission(),
        lambda m: m.fail_submission(),
    ],
)
def test_illegal_transitions_from_idle(action) -> None:
    machine = PatrolSessionMachine()

    with pytest.raises(InvalidTransitionError):
        action(machine)
    assert machine.state is PatrolState.IDLE


def test_cannot_start_twice() -> None:
    machine = _patrolling()

    with pytest.raises(InvalidTransitionError):
        machine.start(2_000, 0.6)
