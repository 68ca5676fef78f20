"""Local history of patrol sessions."""

from __future__ import annotations

import dataclasses
import os
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import MutableSequence, Protocol, Sequence

from pydantic import TypeAdapter, ValidationError

from ..domain.session import PatrolSession
from ..shared.errors import InfrastructureError
from .models import PatrolSessionRecordModel, session_from_record, session_record

_RECORDS = TypeAdapter(list[PatrolSessionRecordModel])


class SessionHistory(Protocol):
    """Persistence boundary for finished patrol sessions."""

    def save_session(self, session: PatrolSession) -> PatrolSession:
        """Insert ``session`` at the front, replacing an entry with the same id."""

    def get_sessions(self) -> Sequence[PatrolSession]:
        """Return every recorded session, newest first."""

    def get_session(self, session_id: str) -> PatrolSession | None:
        """Return one session or ``None``."""

    def update_session(self, session_id: str, **updates) -> PatrolSession | None:
        """Apply field updates to a stored session."""

    def clear_history(self) -> None:
        """Remove every stored session."""


def _upsert(sessions: Sequence[PatrolSession], session: PatrolSession) -> list[PatrolSession]:
    return [session] + [existing for existing in sessions if existing.id != session.id]


@dataclass
class InMemorySessionHistory(SessionHistory):
    """Simple in-memory history used for tests and throwaway runs."""

    _sessions: MutableSequence[PatrolSession] = field(default_factory=list)

    def save_session(self, session: PatrolSession) -> PatrolSession:
        self._sessions[:] = _upsert(self._sessions, session)
        return session

    def get_sessions(self) -> Sequence[PatrolSession]:
        return tuple(self._sessions)

    def get_session(self, session_id: str) -> PatrolSession | None:
        return next((s for s in self._sessions if s.id == session_id), None)

    def update_session(self, session_id: str, **updates) -> PatrolSession | None:
        for index, existing in enumerate(self._sessions):
            if existing.id == session_id:
                updated = dataclasses.replace(existing, **updates)
                self._sessions[index] = updated
                return updated
        return None

    def clear_history(self) -> None:
        self._sessions.clear()


class JsonFileSessionHistory(SessionHistory):
    """History kept in a JSON file, rewritten atomically on every change."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path).expanduser()
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def save_session(self, session: PatrolSession) -> PatrolSession:
        with self._lock:
            self._write(_upsert(self._read(), session))
        return session

    def get_sessions(self) -> Sequence[PatrolSession]:
        with self._lock:
            return tuple(self._read())

    def get_session(self, session_id: str) -> PatrolSession | None:
        return next((s for s in self.get_sessions() if s.id == session_id), None)

    def update_session(self, session_id: str, **updates) -> PatrolSession | None:
        with self._lock:
            sessions = self._read()
            updated: PatrolSession | None = None
            for index, existing in enumerate(sessions):
                if existing.id == session_id:
                    updated = dataclasses.replace(existing, **updates)
                    sessions[index] = updated
            if updated is not None:
                self._write(sessions)
            return updated

    def clear_history(self) -> None:
        with self._lock:
            try:
                self._path.unlink()
            except FileNotFoundError:
                pass

    def _read(self) -> list[PatrolSession]:
        if not self._path.exists():
            return []
        try:
            records = _RECORDS.validate_json(self._path.read_bytes())
        except (OSError, ValidationError) as exc:
            raise InfrastructureError(f"Session history at {self._path} is unreadable") from exc
        return [session_from_record(record) for record in records]

    def _write(self, sessions: Sequence[PatrolSession]) -> None:
        records = [session_record(session) for session in sessions]
        payload = _RECORDS.dump_json(records, by_alias=True, exclude_none=True, indent=2)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=".sessions-", suffix=".json")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
            os.replace(tmp_name, self._path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise InfrastructureError(f"Could not write session history to {self._path}") from exc


__all__ = ["InMemorySessionHistory", "JsonFileSessionHistory", "SessionHistory"]
