from __future__ import annotations

import json
from typing import Any, Sequence

import httpx

from ..domain.collaborators import ArchiveFile
from ..shared.errors import ArchiveUploadError


def _parse_entries(text: str) -> list[dict[str, Any]]:
    """Parse the add endpoint response: one JSON object, an array, or NDJSON lines."""

    stripped = text.strip()
    if not stripped:
        return []
    try:
        parsed = json.loads(stripped)
    except ValueError:
        parsed = None
    if isinstance(parsed, dict):
        data = parsed.get("data")
        return [data if isinstance(data, dict) else parsed]
    if isinstance(parsed, list):
        return [entry for entry in parsed if isinstance(entry, dict)]

    entries: list[dict[str, Any]] = []
    for line in stripped.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            entry = json.loads(line)
        except ValueError as exc:
            raise ArchiveUploadError(f"Archive service returned malformed data: {line[:80]!r}") from exc
        if isinstance(entry, dict):
            entries.append(entry)
    return entries


class LighthouseArchiveService:
    """Uploads evidence to Filecoin/IPFS through the Lighthouse storage API."""

    def __init__(
        self,
        api_key: str | None,
        upload_url: str = "https://upload.lighthouse.storage/api/v0/add",
        gateway_url: str = "https://gateway.lighthouse.storage/ipfs",
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._upload_url = upload_url
        self._gateway_url = gateway_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def gateway_url(self, content_address: str) -> str:
        return f"{self._gateway_url}/{content_address}"

    async def upload_collection(self, files: Sequence[ArchiveFile], name: str) -> str:
        if not files:
            raise ArchiveUploadError("Refusing to upload an empty collection")
        entries = await self._post(files, wrap=True)
        # the wrapping directory is reported with an empty name
        for entry in entries:
            if entry.get("Name", None) in ("", name) and entry.get("Hash"):
                return str(entry["Hash"])
        if len(files) == 1 and entries and entries[-1].get("Hash"):
            return str(entries[-1]["Hash"])
        raise ArchiveUploadError(f"Upload of {name!r} returned no collection address")

    async def upload_bytes(self, data: bytes, name: str) -> str:
        if not data:
            raise ArchiveUploadError(f"Refusing to upload empty file {name!r}")
        entries = await self._post([ArchiveFile(name=name, data=data)], wrap=False)
        for entry in entries:
            if entry.get("Hash"):
                return str(entry["Hash"])
        raise ArchiveUploadError(f"Upload of {name!r} returned no content address")

    async def _post(self, files: Sequence[ArchiveFile], wrap: bool) -> list[dict[str, Any]]:
        if not self._api_key:
            raise ArchiveUploadError("No archive API key configured")
        multipart = [("file", (item.name, item.data, item.mime_type)) for item in files]
        params = {"wrap-with-directory": "true"} if wrap else None
        headers = {"Authorization": f"Bearer {self._api_key}"}
        async with httpx.AsyncClient(
            timeout=self._timeout,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            try:
                response = await client.post(self._upload_url, params=params, files=multipart, headers=headers)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                raise ArchiveUploadError(f"Archive upload failed: {exc}") from exc
        return _parse_entries(response.text)


__all__ = ["LighthouseArchiveService"]
