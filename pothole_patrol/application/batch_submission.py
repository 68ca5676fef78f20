"""Verify once, archive once, then post every candidate of a patrol.

The three stages run strictly in order. The proof and archive stages abort
the whole attempt on failure (:class:`SubmissionAbortedError`), so nothing is
posted that points at a missing proof or a missing archive. The post stage
never aborts: each report succeeds or fails on its own and the result counts
both.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import Sequence

from ..domain.collaborators import ArchiveFile, ArchiveService, ProofProvider, ProofVerifier, ReportBackend
from ..domain.proof import NoProof, PendingProof, ProofState, VerifiedProof, verified_payload
from ..domain.report import ArchiveRef, ReportStatus, SessionCandidate
from ..domain.session import PatrolSession
from ..infrastructure.frame_capture import RawImage, to_raw_bytes
from ..infrastructure.models import (
    DistributionModel,
    SessionMetadataModel,
    iso_timestamp,
    location_model,
    report_record,
)
from ..shared.errors import (
    ArchiveUploadError,
    ImageEncodingError,
    InvalidTransitionError,
    ProofVerificationError,
)
from ..shared.scheduling import Clock, SystemClock, now_ms

DEFAULT_ACTION = "report-pothole"
VERIFICATION_METHOD = "uniqueness-proof"


def batch_signal(start_time: int, count: int, latitude: float) -> str:
    """Deterministic signal binding one proof to one batch."""

    truncated = Decimal(repr(latitude)).quantize(Decimal("0.0001"), rounding=ROUND_DOWN)
    return f"session-{start_time}-{count}-{truncated}"


@dataclass(frozen=True)
class SubmissionResult:
    session_id: str
    uploaded_count: int
    total: int
    proof: ProofState
    archive_ref: ArchiveRef | None
    published: tuple[SessionCandidate, ...] = ()
    failed: tuple[SessionCandidate, ...] = ()

    @property
    def complete(self) -> bool:
        return self.uploaded_count == self.total

    @property
    def verified(self) -> bool:
        return isinstance(self.proof, VerifiedProof)


class BatchSubmissionCoordinator:
    def __init__(
        self,
        backend: ReportBackend,
        archive: ArchiveService,
        proof_provider: ProofProvider,
        proof_verifier: ProofVerifier,
        logger,
        clock: Clock | None = None,
        action: str = DEFAULT_ACTION,
    ) -> None:
        self._backend = backend
        self._archive = archive
        self._proof_provider = proof_provider
        self._proof_verifier = proof_verifier
        self._logger = logger
        self._clock = clock or SystemClock()
        self._action = action

    async def submit(self, session: PatrolSession, beneficiary_address: str | None = None) -> SubmissionResult:
        candidates = list(session.candidates)
        if not candidates:
            raise InvalidTransitionError(f"Session {session.id} has no candidates to submit")

        log = self._logger.bind(session_id=session.id, total=len(candidates))
        log.info("submission.started")

        proof = await self._proof_stage(session, candidates, log)
        if isinstance(proof, VerifiedProof):
            candidates = [candidate.advance(ReportStatus.VERIFIED, proof=proof) for candidate in candidates]

        archive_ref, images = await self._archive_stage(session, candidates, proof, beneficiary_address, log)
        candidates = [
            candidate.with_raw_bytes(image.data) for candidate, image in zip(candidates, images)
        ]

        published, failed = await self._post_stage(session, candidates, images, archive_ref, log)
        result = SubmissionResult(
            session_id=session.id,
            uploaded_count=len(published),
            total=len(candidates),
            proof=proof,
            archive_ref=archive_ref,
            published=tuple(published),
            failed=tuple(failed),
        )
        log.info(
            "submission.finished",
            uploaded=result.uploaded_count,
            failed=len(failed),
            content_address=archive_ref.content_address,
            verified=result.verified,
        )
        return result

    # ------------------------------------------------------------------
    async def _proof_stage(self, session: PatrolSession, candidates: Sequence[SessionCandidate], log) -> ProofState:
        first = candidates[0].proof
        if isinstance(first, VerifiedProof) and all(candidate.proof == first for candidate in candidates):
            # a retry of a batch that was already verified
            log.info("submission.proof_reused", signal=first.signal)
            return first

        if not self._proof_provider.is_available():
            log.info("submission.proof_skipped", reason="provider_unavailable")
            return NoProof()

        signal = batch_signal(session.start_time, len(candidates), candidates[0].location.latitude)
        try:
            payload = await self._proof_provider.request_proof(signal, self._action)
        except ProofVerificationError:
            log.warning("submission.proof_declined", signal=signal)
            raise
        except Exception as exc:
            log.warning("submission.proof_declined", signal=signal, error=str(exc))
            raise ProofVerificationError(f"Uniqueness proof request failed: {exc}") from exc

        pending = PendingProof(payload=payload, signal=signal)
        try:
            outcome = await self._proof_verifier.verify_proof(pending.payload, pending.signal, self._action)
        except Exception as exc:
            raise ProofVerificationError(f"Uniqueness proof could not be verified: {exc}") from exc
        if not outcome.success:
            log.warning("submission.proof_rejected", signal=signal, reason=outcome.reason)
            raise ProofVerificationError(outcome.reason or "Uniqueness proof was rejected")

        log.info("submission.proof_verified", signal=signal)
        return VerifiedProof(payload=pending.payload, signal=signal, verified_at=now_ms(self._clock))

    async def _archive_stage(
        self,
        session: PatrolSession,
        candidates: Sequence[SessionCandidate],
        proof: ProofState,
        beneficiary_address: str | None,
        log,
    ) -> tuple[ArchiveRef, list[RawImage]]:
        images: list[RawImage] = []
        files: list[ArchiveFile] = []
        for candidate in candidates:
            try:
                image = to_raw_bytes(candidate.image.encoded)
            except ImageEncodingError as exc:
                raise ArchiveUploadError(f"Image of {candidate.id} cannot be archived: {exc}") from exc
            images.append(image)
            files.append(ArchiveFile(name=_file_name(candidate, image), data=image.data, mime_type=image.mime_type))

        uploaded_at = now_ms(self._clock)
        metadata = session_metadata(session, candidates, files, proof, beneficiary_address, uploaded_at)
        metadata_name = f"{session.id}-metadata.json"
        files.append(
            ArchiveFile(
                name=metadata_name,
                data=json.dumps(metadata.to_wire(), indent=2).encode("utf-8"),
                mime_type="application/json",
            )
        )

        try:
            address = await self._archive.upload_collection(files, session.id)
        except ArchiveUploadError:
            log.warning("submission.archive_failed")
            raise
        except Exception as exc:
            log.warning("submission.archive_failed", error=str(exc))
            raise ArchiveUploadError(f"Archive upload failed: {exc}") from exc
        if not address:
            raise ArchiveUploadError("Archive service returned an empty content address")

        log.info("submission.archived", content_address=address, files=len(files))
        return ArchiveRef(address, uploaded_at, f"{address}/{metadata_name}"), images

    async def _post_stage(
        self,
        session: PatrolSession,
        candidates: Sequence[SessionCandidate],
        images: Sequence[RawImage],
        archive_ref: ArchiveRef,
        log,
    ) -> tuple[list[SessionCandidate], list[SessionCandidate]]:
        published: list[SessionCandidate] = []
        failed: list[SessionCandidate] = []
        total = len(candidates)
        for index, (candidate, image) in enumerate(zip(candidates, images), start=1):
            candidate = candidate.advance(candidate.status, archive_ref=archive_ref)
            record = report_record(
                candidate,
                session_id=session.id,
                batch_address=archive_ref.content_address,
                batch_index=index,
                batch_total=total,
            )
            try:
                await self._backend.post_report(record.to_wire(), image.data, _file_name(candidate, image), image.mime_type)
            except Exception as exc:
                log.warning("submission.post_failed", candidate_id=candidate.id, index=index, error=str(exc))
                failed.append(candidate)
                continue
            published.append(candidate.advance(ReportStatus.PUBLISHED))
            log.debug("submission.posted", candidate_id=candidate.id, index=index)
        return published, failed


def _file_name(candidate: SessionCandidate, image: RawImage) -> str:
    return f"pothole-{candidate.timestamp}{image.extension}"


def session_metadata(
    session: PatrolSession,
    candidates: Sequence[SessionCandidate],
    files: Sequence[ArchiveFile],
    proof: ProofState,
    beneficiary_address: str | None,
    uploaded_at: int,
) -> SessionMetadataModel:
    payload = verified_payload(proof)
    return SessionMetadataModel(
        name=f"Pothole patrol {session.id}",
        session_id=session.id,
        start_time=session.start_time,
        end_time=session.end_time,
        pothole_count=len(candidates),
        verified=payload is not None,
        verification_method=VERIFICATION_METHOD if payload is not None else "none",
        uniqueness_proof=dict(payload) if payload is not None else None,
        beneficiary_address=beneficiary_address,
        distribution=[
            DistributionModel(
                name=item.name,
                encoding_format=item.mime_type,
                upload_date=iso_timestamp(uploaded_at),
                capture_time=candidate.timestamp,
                confidence=candidate.detection.confidence,
                location=location_model(candidate.location),
            )
            for candidate, item in zip(candidates, files)
        ],
    )


__all__ = [
    "BatchSubmissionCoordinator",
    "DEFAULT_ACTION",
    "SubmissionResult",
    "batch_signal",
    "session_metadata",
]
