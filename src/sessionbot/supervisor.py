from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable

import anyio
from anyio.abc import TaskGroup

from .credentials import CredentialStore
from .ids import is_valid_session_id
from .logging import get_logger
from .model import SessionInfo, StopReason
from .plugins import PluginRegistry
from .registry import SessionStore
from .session import SessionEndedHook, SessionRunner, SessionStartError
from .settings import BotSettings
from .transport import ConnectionFactory

logger = get_logger(__name__)


class Supervisor:
    """Owns every session of the process and the task group they run in."""

    def __init__(
        self,
        *,
        settings: BotSettings,
        factory: ConnectionFactory,
        credentials_store: CredentialStore,
        plugins: PluginRegistry,
        task_group: TaskGroup,
        store: SessionStore | None = None,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
        on_session_ended: SessionEndedHook | None = None,
    ) -> None:
        self._settings = settings
        self._factory = factory
        self._credentials_store = credentials_store
        self._plugins = plugins
        self._task_group = task_group
        self._store = store if store is not None else SessionStore()
        self._sleep = sleep
        self._on_session_ended = on_session_ended

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def plugins(self) -> PluginRegistry:
        return self._plugins

    def _session_ended(self, session_id: str, reason: StopReason) -> None:
        logger.warning(
            "supervisor.session_ended", session_id=session_id, reason=reason.value
        )
        if self._on_session_ended is None:
            return
        try:
            self._on_session_ended(session_id, reason)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "supervisor.session_ended_hook_failed",
                session_id=session_id,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )

    async def start_session(
        self, session_id: str, credentials: bytes | None = None
    ) -> SessionRunner:
        if not is_valid_session_id(session_id):
            raise ValueError(f"Invalid session id {session_id!r}.")
        runner = self._store.get(session_id)
        if runner is None:
            runner = SessionRunner(
                session_id,
                credentials,
                factory=self._factory,
                store=self._store,
                credentials_store=self._credentials_store,
                settings=self._settings,
                plugins=self._plugins,
                task_group=self._task_group,
                sleep=self._sleep,
                on_ended=self._session_ended,
            )
        await runner.start()
        return runner

    async def start_many(self, session_ids: Iterable[str]) -> list[str]:
        """Start each session; failures are logged and skipped. Returns the started ids."""
        started: list[str] = []
        for session_id in session_ids:
            try:
                await self.start_session(session_id)
            except (SessionStartError, ValueError) as exc:
                logger.error(
                    "supervisor.start_failed", session_id=session_id, error=str(exc)
                )
                continue
            started.append(session_id)
        return started

    async def stop_session(self, session_id: str) -> bool:
        runner = self._store.get(session_id)
        if runner is None:
            return False
        await runner.stop()
        return True

    async def stop_all(self) -> None:
        for runner in self._store.snapshot().values():
            await runner.stop()

    def sessions(self) -> list[SessionInfo]:
        return [runner.snapshot() for runner in self._store.snapshot().values()]
