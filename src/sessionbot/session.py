"""Connection lifecycle for one chat session.

A runner owns one transport connection at a time and consumes its event
stream in a single task, so events for a session are handled strictly in
order. Closes that are not logouts schedule a reconnect with linear, capped
backoff until the attempt budget runs out.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TypeAlias

import anyio
from anyio.abc import TaskGroup

from .credentials import CredentialStore
from .interactions import InteractionStore
from .logging import bind_session, get_logger
from .model import ConnectionState, SessionInfo, StopReason
from .plugins import PluginRegistry
from .registry import DuplicateSessionError, SessionStore
from .router import MessageRouter
from .settings import BotSettings
from .transport import (
    CloseReason,
    Connection,
    ConnectionClosed,
    ConnectionEvent,
    ConnectionFactory,
    ConnectionOpened,
    CredentialsUpdated,
    MessagesReceived,
    TextContent,
)
from .wizard import WizardTracker

logger = get_logger(__name__)

TERMINAL_STOP_REASONS = frozenset(
    {StopReason.LOGGED_OUT, StopReason.RECONNECT_EXHAUSTED}
)

SessionEndedHook: TypeAlias = Callable[[str, StopReason], None]
RouterFactory: TypeAlias = Callable[["SessionRunner"], MessageRouter]


class SessionStartError(RuntimeError):
    def __init__(self, session_id: str, message: str) -> None:
        super().__init__(f"session {session_id!r}: {message}")
        self.session_id = session_id


class SessionRunner:
    def __init__(
        self,
        session_id: str,
        credentials: bytes | None = None,
        *,
        factory: ConnectionFactory,
        store: SessionStore,
        credentials_store: CredentialStore,
        settings: BotSettings,
        plugins: PluginRegistry,
        task_group: TaskGroup,
        router_factory: RouterFactory | None = None,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
        on_ended: SessionEndedHook | None = None,
    ) -> None:
        self._session_id = session_id
        self._credentials = credentials
        self._factory = factory
        self._store = store
        self._credentials_store = credentials_store
        self._settings = settings
        self._plugins = plugins
        self._task_group = task_group
        self._sleep = sleep
        self._on_ended = on_ended

        self._state = ConnectionState.DISCONNECTED
        self._conn: Connection | None = None
        self._attempts = 0
        self._running = False
        self._start_lock = anyio.Lock()
        self._reconnect_scope: anyio.CancelScope | None = None
        self._consumer_scope: anyio.CancelScope | None = None

        now = datetime.now()
        self.created_at = now
        self.started_at = now
        self.last_activity = now

        self._wizard = WizardTracker(ttl_s=settings.wizard_ttl_s)
        self._interactions = InteractionStore(ttl_s=settings.wizard_ttl_s)
        if router_factory is None:
            self._router = MessageRouter(
                session=self,
                settings=settings,
                plugins=plugins,
                wizard=self._wizard,
                interactions=self._interactions,
                task_group=task_group,
            )
        else:
            self._router = router_factory(self)

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def running(self) -> bool:
        return self._running

    @property
    def connection(self) -> Connection | None:
        return self._conn

    @property
    def credentials(self) -> bytes | None:
        return self._credentials

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    @property
    def wizard(self) -> WizardTracker:
        return self._wizard

    @property
    def interactions(self) -> InteractionStore:
        return self._interactions

    @property
    def router(self) -> MessageRouter:
        return self._router

    def snapshot(self) -> SessionInfo:
        return SessionInfo(
            session_id=self._session_id,
            state=self._state,
            reconnect_attempts=self._attempts,
            max_reconnect_attempts=self._settings.reconnect.max_attempts,
            created_at=self.created_at,
            started_at=self.started_at,
            last_activity=self.last_activity,
            running=self._running,
        )

    async def start(self) -> Connection:
        """Connect, or return the live connection when already connecting/connected.

        Failures leave the session in ``error`` and raise
        :class:`SessionStartError`; they are not retried automatically.
        """
        async with self._start_lock:
            if self._state.is_live and self._conn is not None:
                logger.debug("session.already_running", session_id=self._session_id)
                return self._conn
            self._cancel_reconnect()
            if self._conn is not None:
                # closed connection still attached while a reconnect was pending
                logger.debug("session.stale_connection", session_id=self._session_id)
                await self._detach_connection()
            self._attempts = 0
            try:
                return await self._connect()
            except SessionStartError:
                if self._state is not ConnectionState.STOPPED:
                    self._state = ConnectionState.ERROR
                raise

    async def _detach_connection(self) -> None:
        conn, self._conn = self._conn, None
        consumer, self._consumer_scope = self._consumer_scope, None
        if conn is not None:
            with anyio.move_on_after(self._settings.timeouts.send_s, shield=True):
                await self._close_quietly(conn)
        if consumer is not None:
            consumer.cancel()

    async def _restart(self) -> Connection:
        async with self._start_lock:
            return await self._connect()

    async def _connect(self) -> Connection:
        self._state = ConnectionState.CONNECTING
        if not self._credentials and self._credentials_store.available:
            persisted = await self._credentials_store.load(self._session_id)
            if persisted:
                logger.info(
                    "session.credentials_loaded",
                    session_id=self._session_id,
                    size=len(persisted),
                )
                self._credentials = persisted

        try:
            with anyio.fail_after(self._settings.timeouts.connect_s):
                conn = await self._factory.connect(self._session_id, self._credentials)
        except TimeoutError:
            logger.warning(
                "session.connect_timeout",
                session_id=self._session_id,
                timeout_s=self._settings.timeouts.connect_s,
            )
            raise SessionStartError(self._session_id, "connect timed out") from None
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "session.connect_failed",
                session_id=self._session_id,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            raise SessionStartError(self._session_id, str(exc)) from exc

        if self._state is ConnectionState.STOPPED:
            with anyio.CancelScope(shield=True):
                await self._close_quietly(conn)
            raise SessionStartError(self._session_id, "stopped while connecting")

        try:
            self._store.add(self)
        except DuplicateSessionError as exc:
            with anyio.CancelScope(shield=True):
                await self._close_quietly(conn)
            raise SessionStartError(self._session_id, str(exc)) from exc

        self._conn = conn
        self._running = True
        self.started_at = datetime.now()
        self._task_group.start_soon(self._consume, conn)
        self._task_group.start_soon(self._welcome, conn)
        logger.info("session.started", session_id=self._session_id)
        return conn

    async def stop(self, reason: StopReason = StopReason.REQUESTED) -> None:
        """Tear the session down; calling it again is a no-op.

        A ``reconnect`` stop is the first half of a stop-then-start cycle and
        leaves the session ``disconnected`` instead of ``stopped``. The session
        stays registered across that cycle so it can still be stopped by id.
        """
        if self._state is ConnectionState.STOPPED:
            return
        terminal = reason is not StopReason.RECONNECT
        self._state = ConnectionState.STOPPED if terminal else ConnectionState.DISCONNECTED
        self._running = False
        if terminal:
            self._cancel_reconnect()
            self._store.remove(self._session_id, runner=self)
        self._wizard.clear_all()
        self._interactions.clear_all()

        await self._detach_connection()

        logger.info("session.stopped", session_id=self._session_id, reason=reason.value)
        if reason in TERMINAL_STOP_REASONS and self._on_ended is not None:
            self._on_ended(self._session_id, reason)

    async def _close_quietly(self, conn: Connection) -> None:
        try:
            await conn.close()
        except Exception as exc:  # noqa: BLE001
            logger.debug(
                "session.close_failed",
                session_id=self._session_id,
                error=str(exc),
            )

    def _cancel_reconnect(self) -> None:
        if self._reconnect_scope is not None:
            self._reconnect_scope.cancel()
            self._reconnect_scope = None

    async def _consume(self, conn: Connection) -> None:
        if conn is not self._conn:
            return
        bind_session(self._session_id)
        with anyio.CancelScope() as scope:
            self._consumer_scope = scope
            try:
                async for event in conn.events():
                    if conn is not self._conn:
                        break
                    await self._handle_event(event, conn)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "session.events_failed",
                    session_id=self._session_id,
                    error=str(exc),
                    error_type=exc.__class__.__name__,
                )
                if conn is self._conn:
                    await self._handle_close(
                        ConnectionClosed(
                            reason=CloseReason.CONNECTION_LOST, detail=str(exc)
                        )
                    )
        if self._consumer_scope is scope:
            self._consumer_scope = None

    async def _handle_event(self, event: ConnectionEvent, conn: Connection) -> None:
        match event:
            case CredentialsUpdated(credentials=blob):
                self._credentials = blob
                await self._persist_credentials()
            case ConnectionOpened():
                self._state = ConnectionState.CONNECTED
                self._attempts = 0
                self.last_activity = datetime.now()
                if conn.credentials:
                    self._credentials = conn.credentials
                logger.info("session.connected", session_id=self._session_id)
                await self._persist_credentials()
            case ConnectionClosed():
                await self._handle_close(event)
            case MessagesReceived(messages=messages):
                self.last_activity = datetime.now()
                for raw in messages:
                    try:
                        await self._router.route(raw, conn)
                    except Exception as exc:  # noqa: BLE001
                        logger.error(
                            "session.route_failed",
                            session_id=self._session_id,
                            error=str(exc),
                            error_type=exc.__class__.__name__,
                            exc_info=True,
                        )

    async def _persist_credentials(self) -> None:
        if not self._credentials or not self._credentials_store.available:
            return
        saved = await self._credentials_store.save(self._session_id, self._credentials)
        if not saved:
            logger.warning("session.persist_failed", session_id=self._session_id)

    async def _handle_close(self, event: ConnectionClosed) -> None:
        self._state = ConnectionState.DISCONNECTED
        logger.info(
            "session.disconnected",
            session_id=self._session_id,
            reason=event.reason.value,
            status_code=event.status_code,
        )
        if event.is_logout:
            logger.warning("session.logged_out", session_id=self._session_id)
            await self.stop(StopReason.LOGGED_OUT)
            return
        await self._schedule_reconnect()

    async def _schedule_reconnect(self) -> None:
        max_attempts = self._settings.reconnect.max_attempts
        if self._attempts >= max_attempts:
            logger.warning(
                "session.reconnect.exhausted",
                session_id=self._session_id,
                attempts=self._attempts,
            )
            await self.stop(StopReason.RECONNECT_EXHAUSTED)
            return
        self._attempts += 1
        delay = self._settings.reconnect.delay_for(self._attempts)
        logger.info(
            "session.reconnect.scheduled",
            session_id=self._session_id,
            attempt=self._attempts,
            max_attempts=max_attempts,
            delay_s=delay,
        )
        self._cancel_reconnect()
        scope = anyio.CancelScope()
        self._reconnect_scope = scope
        self._task_group.start_soon(self._reconnect_after, scope, delay)

    async def _reconnect_after(self, scope: anyio.CancelScope, delay: float) -> None:
        bind_session(self._session_id)
        with scope:
            await self._sleep(delay)
            if self._state is ConnectionState.STOPPED:
                logger.debug("session.reconnect.skipped", session_id=self._session_id)
                return
            await self.stop(StopReason.RECONNECT)
            try:
                await self._restart()
            except SessionStartError:
                if self._reconnect_scope is scope:
                    self._reconnect_scope = None
                if self._state is ConnectionState.STOPPED:
                    return
                self._state = ConnectionState.DISCONNECTED
                await self._schedule_reconnect()
                return
        if self._reconnect_scope is scope:
            self._reconnect_scope = None

    async def _welcome(self, conn: Connection) -> None:
        text = (
            f"✅ *{self._settings.bot_name} connected*\n\n"
            f"Session: {self._session_id}\n"
            f"Prefix: {self._settings.prefix}"
        )
        try:
            with anyio.fail_after(self._settings.timeouts.send_s):
                await conn.send_message(conn.own_jid, TextContent(text=text))
        except Exception as exc:  # noqa: BLE001
            logger.debug(
                "session.welcome_failed",
                session_id=self._session_id,
                error=str(exc),
            )
