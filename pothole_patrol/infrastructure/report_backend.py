from __future__ import annotations

import json
from typing import Any, Mapping, Sequence

import httpx

from ..domain.collaborators import VerificationOutcome
from ..shared.errors import InfrastructureError, ReportSubmissionError
from .models import BackendResponseModel, VerifyRequestModel


class _HttpAccess:
    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            follow_redirects=True,
            http2=self._transport is None,
            transport=self._transport,
            headers={"Accept": "application/json"},
        )


def _parse(response: httpx.Response) -> BackendResponseModel:
    try:
        return BackendResponseModel.model_validate(response.json())
    except (ValueError, TypeError):
        return BackendResponseModel(success=False, error=f"Unexpected response body (HTTP {response.status_code})")


class HttpReportBackend(_HttpAccess):
    """Client for the ``/api/reports`` endpoints of the report store."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        reports_path: str = "/api/reports",
    ) -> None:
        super().__init__(base_url, timeout, transport)
        self._reports_path = reports_path

    async def post_report(
        self,
        report: Mapping[str, Any],
        image: bytes,
        filename: str,
        mime_type: str,
    ) -> Mapping[str, Any]:
        async with self._client() as client:
            try:
                response = await client.post(
                    self._reports_path,
                    data={"report": json.dumps(report)},
                    files={"image": (filename, image, mime_type)},
                )
            except httpx.HTTPError as exc:
                raise ReportSubmissionError(f"Report {report.get('id')} could not be sent: {exc}") from exc
        body = _parse(response)
        if response.is_error or not body.success:
            raise ReportSubmissionError(
                f"Report {report.get('id')} rejected (HTTP {response.status_code}): {body.error or 'unknown error'}"
            )
        return body.report or dict(report)

    async def list_reports(self) -> Sequence[Mapping[str, Any]]:
        async with self._client() as client:
            try:
                response = await client.get(self._reports_path)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                raise InfrastructureError(f"Listing reports failed: {exc}") from exc
        body = _parse(response)
        if not body.success:
            raise InfrastructureError(body.error or "Listing reports failed")
        return body.reports or []

    async def update_report(self, report_id: str, updates: Mapping[str, Any]) -> Mapping[str, Any]:
        async with self._client() as client:
            try:
                response = await client.patch(
                    self._reports_path,
                    json={"reportId": report_id, "updates": dict(updates)},
                )
            except httpx.HTTPError as exc:
                raise InfrastructureError(f"Updating report {report_id} failed: {exc}") from exc
        body = _parse(response)
        if response.is_error or not body.success:
            raise InfrastructureError(
                f"Updating report {report_id} failed (HTTP {response.status_code}): {body.error or 'unknown error'}"
            )
        return body.report or {}


class HttpProofVerifier(_HttpAccess):
    """Server-side verification of uniqueness proofs."""

    def __init__(
        self,
        base_url: str,
        verify_path: str = "/api/verify",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(base_url, timeout, transport)
        self._verify_path = verify_path

    async def verify_proof(
        self,
        payload: Mapping[str, Any],
        signal: str,
        action: str,
    ) -> VerificationOutcome:
        request = VerifyRequestModel(payload=dict(payload), action=action, signal=signal)
        async with self._client() as client:
            try:
                response = await client.post(self._verify_path, json=request.to_wire())
            except httpx.HTTPError as exc:
                return VerificationOutcome(success=False, reason=f"Verification request failed: {exc}")
        body = _parse(response)
        if response.is_error or not body.success:
            return VerificationOutcome(
                success=False,
                reason=body.error or f"Verification failed (HTTP {response.status_code})",
            )
        return VerificationOutcome(success=True)


__all__ = ["HttpProofVerifier", "HttpReportBackend"]
