from __future__ import annotations

import pytest

from fakes import FrameSource, make_candidate, make_frame
from pothole_patrol.app import main as cli
from pothole_patrol.application.batch_submission import SubmissionResult
from pothole_patrol.domain.proof import NoProof
from pothole_patrol.domain.report import ArchiveRef
from pothole_patrol.domain.session import PatrolSession
from pothole_patrol.infrastructure.archive_service import LighthouseArchiveService
from pothole_patrol.infrastructure.session_history import JsonFileSessionHistory


@pytest.fixture
def history_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "sessions.json"
    monkeypatch.setenv("PP_HISTORY_PATH", str(path))
    return path


def test_parser_defaults() -> None:
    args = cli.build_parser().parse_args(["patrol"])

    assert args.command == "patrol"
    assert args.camera is None and args.video is None
    assert args.duration == 30.0
    assert not args.submit and not args.manual_only


def test_camera_and_video_are_exclusive() -> None:
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["patrol", "--camera", "0", "--video", "road.mp4"])


def test_history_lists_recorded_sessions(history_file, capsys) -> None:
    candidate = make_candidate(1_700_000_001_000)
    JsonFileSessionHistory(history_file).save_session(
        PatrolSession("session-1700000000000", 1_700_000_000_000, 1_700_000_005_000, (candidate,))
    )

    assert cli.main(["history"]) == 0

    out = capsys.readouterr().out
    assert "session-1700000000000 status=pending_upload potholes=1 duration=5.0s" in out
    assert candidate.id in out


def test_history_clear(history_file, capsys) -> None:
    JsonFileSessionHistory(history_file).save_session(PatrolSession("session-1", 1, 2, ()))

    assert cli.main(["history", "--clear"]) == 0

    assert "History cleared." in capsys.readouterr().out
    assert JsonFileSessionHistory(history_file).get_sessions() == ()


def test_history_empty(history_file, capsys) -> None:
    assert cli.main(["history"]) == 0
    assert "No sessions recorded." in capsys.readouterr().out


def test_manual_only_patrol_records_captures(history_file, monkeypatch, capsys) -> None:
    source = FrameSource([make_frame()], repeat_last=True)
    monkeypatch.setattr(cli, "_open_source", lambda settings, args: source)

    code = cli.main(["patrol", "--manual-only", "--duration", "0.1", "--capture-every", "0.03"])

    assert code == 0
    assert source.closed
    sessions = JsonFileSessionHistory(history_file).get_sessions()
    assert len(sessions) == 1
    assert sessions[0].pothole_count >= 1
    assert all(candidate.manual for candidate in sessions[0].candidates)
    assert f"{sessions[0].id} status=pending_upload" in capsys.readouterr().out


def test_submission_summary_links_the_archive_gateway() -> None:
    archive = LighthouseArchiveService(None, gateway_url="https://gw.test/ipfs/")
    result = SubmissionResult(
        session_id="session-1",
        uploaded_count=2,
        total=3,
        proof=NoProof(),
        archive_ref=ArchiveRef("bafydir", 1_700_000_000_000),
    )

    assert cli.submission_summary(result, archive) == "Submitted 2/3 reports\n  archive: https://gw.test/ipfs/bafydir"
    assert cli.submission_summary(
        SubmissionResult("session-1", 0, 1, NoProof(), None), archive
    ) == "Submitted 0/1 reports"
