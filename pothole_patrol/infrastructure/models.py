"""Wire and storage models for reports, sessions and proof verification."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..domain.detection import BoundingBox, Detection
from ..domain.proof import NoProof, ProofState, VerifiedProof
from ..domain.report import ArchiveRef, CapturedImage, Location, ReportStatus, SessionCandidate
from ..domain.session import PatrolSession, SessionStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class BoundingBoxModel(CamelModel):
    """Corner-form box in model input pixels."""

    x: float
    y: float
    width: float
    height: float


class DetectionModel(CamelModel):
    confidence: float = Field(..., ge=0.0, le=1.0)
    bounding_box: BoundingBoxModel
    label: str = Field("pothole", alias="class")


class LocationModel(CamelModel):
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)
    address: Optional[str] = None


class ImageModel(CamelModel):
    data_url: str


class ArchiveModel(CamelModel):
    cid: str
    upload_date: str
    metadata_cid: Optional[str] = None


class ReportRecordModel(CamelModel):
    """A report as the backend stores it."""

    id: str
    timestamp: int
    location: LocationModel
    image: ImageModel
    detection: DetectionModel
    status: ReportStatus
    uniqueness_proof: Optional[dict[str, Any]] = None
    archive: Optional[ArchiveModel] = None
    session_id: Optional[str] = None
    batch_address: Optional[str] = None
    batch_index: Optional[int] = Field(None, ge=1)
    batch_total: Optional[int] = Field(None, ge=1)
    manual: bool = False


class DistributionModel(CamelModel):
    type: str = Field("DataDownload", alias="@type")
    name: str
    encoding_format: str
    upload_date: str
    capture_time: int
    confidence: float
    location: LocationModel


class SessionMetadataModel(CamelModel):
    """JSON-LD dataset document archived next to a session's images."""

    context: str = Field("https://schema.org", alias="@context")
    type: str = Field("Dataset", alias="@type")
    name: str
    session_id: str
    start_time: int
    end_time: int
    pothole_count: int
    verified: bool
    verification_method: str
    uniqueness_proof: Optional[dict[str, Any]] = None
    beneficiary_address: Optional[str] = None
    variable_measured: str = "pothole"
    distribution: list[DistributionModel] = Field(default_factory=list)


class PatrolSessionRecordModel(CamelModel):
    id: str
    start_time: int
    end_time: int
    pothole_count: int
    status: SessionStatus
    reports: list[ReportRecordModel] = Field(default_factory=list)
    archive: Optional[ArchiveModel] = None
    beneficiary_address: Optional[str] = None


class VerifyRequestModel(CamelModel):
    payload: dict[str, Any]
    action: str
    signal: str


class BackendResponseModel(BaseModel):
    model_config = ConfigDict(extra="allow")

    success: bool = False
    report: Optional[dict[str, Any]] = None
    reports: Optional[list[dict[str, Any]]] = None
    error: Optional[str] = None
    message: Optional[str] = None


# ----------------------------------------------------------------------
# Mapping helpers
def iso_timestamp(epoch_ms: int) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).isoformat()


def _archive_model(ref: ArchiveRef | None) -> ArchiveModel | None:
    if ref is None:
        return None
    return ArchiveModel(
        cid=ref.content_address,
        upload_date=iso_timestamp(ref.upload_timestamp),
        metadata_cid=ref.metadata_address,
    )


def _archive_ref(model: ArchiveModel | None) -> ArchiveRef | None:
    if model is None:
        return None
    uploaded = datetime.fromisoformat(model.upload_date)
    return ArchiveRef(
        content_address=model.cid,
        upload_timestamp=round(uploaded.timestamp() * 1000),
        metadata_address=model.metadata_cid,
    )


def location_model(location: Location) -> LocationModel:
    return LocationModel(latitude=location.latitude, longitude=location.longitude, address=location.address)


def report_record(
    candidate: SessionCandidate,
    *,
    session_id: str | None = None,
    batch_address: str | None = None,
    batch_index: int | None = None,
    batch_total: int | None = None,
) -> ReportRecordModel:
    """Build the backend record for ``candidate``.

    Only a verified proof is attached; pending payloads stay on the device.
    """

    box = candidate.detection.bounding_box
    proof = candidate.proof
    return ReportRecordModel(
        id=candidate.id,
        timestamp=candidate.timestamp,
        location=location_model(candidate.location),
        image=ImageModel(data_url=candidate.image.encoded),
        detection=DetectionModel(
            confidence=candidate.detection.confidence,
            bounding_box=BoundingBoxModel(x=box.x, y=box.y, width=box.width, height=box.height),
            label=candidate.detection.label,
        ),
        status=candidate.status,
        uniqueness_proof=dict(proof.payload) if isinstance(proof, VerifiedProof) else None,
        archive=_archive_model(candidate.archive_ref),
        session_id=session_id,
        batch_address=batch_address,
        batch_index=batch_index,
        batch_total=batch_total,
        manual=candidate.manual,
    )


def candidate_from_record(record: ReportRecordModel) -> SessionCandidate:
    box = record.detection.bounding_box
    proof: ProofState = NoProof()
    if record.uniqueness_proof is not None:
        # history only ever stores proofs that passed verification
        proof = VerifiedProof(payload=record.uniqueness_proof, signal="", verified_at=record.timestamp)
    return SessionCandidate(
        id=record.id,
        timestamp=record.timestamp,
        location=Location(record.location.latitude, record.location.longitude, record.location.address),
        image=CapturedImage(encoded=record.image.data_url),
        detection=Detection(
            confidence=record.detection.confidence,
            bounding_box=BoundingBox(box.x, box.y, box.width, box.height),
            label=record.detection.label,
        ),
        proof=proof,
        status=record.status,
        archive_ref=_archive_ref(record.archive),
        manual=record.manual,
    )


def session_record(session: PatrolSession) -> PatrolSessionRecordModel:
    return PatrolSessionRecordModel(
        id=session.id,
        start_time=session.start_time,
        end_time=session.end_time,
        pothole_count=session.pothole_count,
        status=session.status,
        reports=[report_record(candidate, session_id=session.id) for candidate in session.candidates],
        archive=_archive_model(session.archive_ref),
        beneficiary_address=session.beneficiary_address,
    )


def session_from_record(record: PatrolSessionRecordModel) -> PatrolSession:
    return PatrolSession(
        id=record.id,
        start_time=record.start_time,
        end_time=record.end_time,
        candidates=tuple(candidate_from_record(report) for report in record.reports),
        status=record.status,
        archive_ref=_archive_ref(record.archive),
        beneficiary_address=record.beneficiary_address,
    )
