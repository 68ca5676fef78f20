"""Contracts for the services the capture pipeline depends on."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, Sequence

from .report import Location


@dataclass(frozen=True)
class ArchiveFile:
    name: str
    data: bytes = field(repr=False)
    mime_type: str = "application/octet-stream"


@dataclass(frozen=True)
class VerificationOutcome:
    success: bool
    reason: str | None = None


class GeolocationProvider(Protocol):
    async def get_current_position(self, timeout: float) -> Location:
        """Resolve the current position or raise ``GeolocationError``."""


class ProofProvider(Protocol):
    def is_available(self) -> bool:
        """Whether the trusted host that issues proofs is reachable."""

    async def request_proof(self, signal: str, action: str) -> Mapping[str, Any]:
        """Ask the host for a proof bound to ``signal``; raises if declined."""


class ProofVerifier(Protocol):
    async def verify_proof(
        self,
        payload: Mapping[str, Any],
        signal: str,
        action: str,
    ) -> VerificationOutcome:
        """Authoritative server-side check of a client-obtained proof."""


class ArchiveService(Protocol):
    async def upload_collection(self, files: Sequence[ArchiveFile], name: str) -> str:
        """Upload ``files`` as one unit and return its content address."""

    async def upload_bytes(self, data: bytes, name: str) -> str:
        """Upload a single blob and return its content address."""


class ReportBackend(Protocol):
    async def post_report(
        self,
        report: Mapping[str, Any],
        image: bytes,
        filename: str,
        mime_type: str,
    ) -> Mapping[str, Any]:
        """Create one report; raises ``ReportSubmissionError`` on failure."""

    async def list_reports(self) -> Sequence[Mapping[str, Any]]:
        """Return every stored report."""

    async def update_report(self, report_id: str, updates: Mapping[str, Any]) -> Mapping[str, Any]:
        """Apply a partial update to a stored report."""


__all__ = [
    "ArchiveFile",
    "ArchiveService",
    "GeolocationProvider",
    "ProofProvider",
    "ProofVerifier",
    "ReportBackend",
    "VerificationOutcome",
]
