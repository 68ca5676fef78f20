from __future__ import annotations

from fakes import make_candidate
from pothole_patrol.domain.proof import PendingProof, VerifiedProof
from pothole_patrol.domain.report import ArchiveRef, ReportStatus
from pothole_patrol.infrastructure.models import SessionMetadataModel, candidate_from_record, report_record


def test_report_record_uses_backend_field_names() -> None:
    candidate = make_candidate(1_700_000_000_123).advance(
        ReportStatus.VERIFIED,
        proof=VerifiedProof({"nullifier_hash": "0x1"}, "sig", verified_at=1),
        archive_ref=ArchiveRef("bafydir", 1_700_000_000_000),
    )

    wire = report_record(
        candidate,
        session_id="session-1",
        batch_address="bafydir",
        batch_index=2,
        batch_total=3,
    ).to_wire()

    assert wire["id"] == "report-1700000000123"
    assert wire["detection"]["class"] == "pothole"
    assert wire["detection"]["boundingBox"] == {"x": 10.0, "y": 20.0, "width": 30.0, "height": 40.0}
    assert wire["image"]["dataUrl"].startswith("data:image/jpeg;base64,")
    assert wire["status"] == "verified"
    assert wire["uniquenessProof"] == {"nullifier_hash": "0x1"}
    assert wire["archive"]["cid"] == "bafydir"
    assert (wire["batchAddress"], wire["batchIndex"], wire["batchTotal"]) == ("bafydir", 2, 3)
    assert "address" not in wire["location"]


def test_pending_proof_is_never_sent() -> None:
    candidate = make_candidate(1).advance(ReportStatus.PENDING, proof=PendingProof({"proof": "0x"}, "sig"))

    wire = report_record(candidate).to_wire()

    assert "uniquenessProof" not in wire
    assert wire["status"] == "pending"


def test_candidate_from_record_restores_domain_values() -> None:
    candidate = make_candidate(42, confidence=0.77, manual=True)

    restored = candidate_from_record(report_record(candidate))

    assert restored == candidate


def test_metadata_document_is_json_ld() -> None:
    metadata = SessionMetadataModel(
        name="Pothole patrol session-1",
        session_id="session-1",
        start_time=1,
        end_time=2,
        pothole_count=0,
        verified=False,
        verification_method="none",
    ).to_wire()

    assert metadata["@context"] == "https://schema.org"
    assert metadata["@type"] == "Dataset"
    assert metadata["potholeCount"] == 0
    assert metadata["distribution"] == []
