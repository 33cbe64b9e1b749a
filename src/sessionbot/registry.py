from __future__ import annotations

import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .session import SessionRunner


class DuplicateSessionError(RuntimeError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"session {session_id!r} is already registered")
        self.session_id = session_id


class SessionStore:
    """Process-wide map of session id to live runner.

    Every operation is O(1) and non-blocking, so a single mutex is enough and
    the store can be touched from cancelled scopes without checkpoints.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: dict[str, SessionRunner] = {}

    def add(self, runner: SessionRunner) -> None:
        with self._lock:
            existing = self._sessions.get(runner.session_id)
            if existing is not None and existing is not runner:
                raise DuplicateSessionError(runner.session_id)
            self._sessions[runner.session_id] = runner

    def get(self, session_id: str) -> SessionRunner | None:
        with self._lock:
            return self._sessions.get(session_id)

    def remove(
        self, session_id: str, *, runner: SessionRunner | None = None
    ) -> SessionRunner | None:
        with self._lock:
            existing = self._sessions.get(session_id)
            if existing is None:
                return None
            if runner is not None and existing is not runner:
                return None
            return self._sessions.pop(session_id)

    def ids(self) -> list[str]:
        with self._lock:
            return sorted(self._sessions)

    def snapshot(self) -> dict[str, SessionRunner]:
        with self._lock:
            return dict(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
