from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Protocol, runtime_checkable

import anyio

from .ids import is_valid_session_id
from .logging import get_logger

logger = get_logger(__name__)

CREDENTIALS_SUFFIX = ".creds"


class CredentialStoreError(RuntimeError):
    pass


@runtime_checkable
class CredentialStore(Protocol):
    @property
    def available(self) -> bool: ...

    async def load(self, session_id: str) -> bytes | None: ...

    async def save(self, session_id: str, credentials: bytes) -> bool: ...

    async def delete(self, session_id: str) -> bool: ...

    async def list_ids(self) -> list[str]: ...


class DisconnectedCredentialStore:
    """Store used when persistence is unavailable; sessions stay in memory."""

    @property
    def available(self) -> bool:
        return False

    async def load(self, session_id: str) -> bytes | None:
        return None

    async def save(self, session_id: str, credentials: bytes) -> bool:
        return False

    async def delete(self, session_id: str) -> bool:
        return False

    async def list_ids(self) -> list[str]:
        return []


class MemoryCredentialStore:
    def __init__(self, initial: dict[str, bytes] | None = None) -> None:
        self._blobs: dict[str, bytes] = dict(initial or {})
        self.saves: list[tuple[str, bytes]] = []

    @property
    def available(self) -> bool:
        return True

    async def load(self, session_id: str) -> bytes | None:
        return self._blobs.get(session_id)

    async def save(self, session_id: str, credentials: bytes) -> bool:
        self._blobs[session_id] = bytes(credentials)
        self.saves.append((session_id, bytes(credentials)))
        return True

    async def delete(self, session_id: str) -> bool:
        return self._blobs.pop(session_id, None) is not None

    async def list_ids(self) -> list[str]:
        return sorted(self._blobs)


def _atomic_write(path: Path, payload: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


class FileCredentialStore:
    """One opaque credential file per session id under ``directory``."""

    def __init__(self, directory: Path) -> None:
        self._directory = directory.expanduser()

    @property
    def available(self) -> bool:
        return True

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, session_id: str) -> Path:
        if not is_valid_session_id(session_id):
            raise CredentialStoreError(f"Invalid session id {session_id!r}.")
        return self._directory / f"{session_id}{CREDENTIALS_SUFFIX}"

    async def load(self, session_id: str) -> bytes | None:
        try:
            path = self.path_for(session_id)
            return await anyio.to_thread.run_sync(path.read_bytes)
        except FileNotFoundError:
            return None
        except (OSError, CredentialStoreError) as exc:
            logger.warning(
                "credentials.load_failed", session_id=session_id, error=str(exc)
            )
            return None

    async def save(self, session_id: str, credentials: bytes) -> bool:
        try:
            path = self.path_for(session_id)
            await anyio.to_thread.run_sync(_atomic_write, path, bytes(credentials))
        except (OSError, CredentialStoreError) as exc:
            logger.warning(
                "credentials.save_failed", session_id=session_id, error=str(exc)
            )
            return False
        logger.debug("credentials.saved", session_id=session_id, size=len(credentials))
        return True

    async def delete(self, session_id: str) -> bool:
        try:
            path = self.path_for(session_id)
            await anyio.to_thread.run_sync(path.unlink)
        except FileNotFoundError:
            return False
        except (OSError, CredentialStoreError) as exc:
            logger.warning(
                "credentials.delete_failed", session_id=session_id, error=str(exc)
            )
            return False
        return True

    async def list_ids(self) -> list[str]:
        def _scan() -> list[str]:
            if not self._directory.is_dir():
                return []
            return sorted(
                path.name[: -len(CREDENTIALS_SUFFIX)]
                for path in self._directory.iterdir()
                if path.is_file()
                and path.name.endswith(CREDENTIALS_SUFFIX)
                and is_valid_session_id(path.name[: -len(CREDENTIALS_SUFFIX)])
            )

        return await anyio.to_thread.run_sync(_scan)
