from __future__ import annotations

import enum
import random
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any

from anyio.abc import TaskGroup

from .builtins import run_builtin
from .buttons import is_legacy_button
from .context import MessageContext, SessionView
from .dispatcher import ButtonDispatcher
from .inbound import InboundMessage, parse_inbound
from .interactions import InteractionStore
from .logging import get_logger
from .transport import Connection
from .wizard import WizardTracker, complete_wizard

if TYPE_CHECKING:
    from .plugins import PluginRegistry
    from .settings import BotSettings

logger = get_logger(__name__)

AUTO_REACTIONS = ("❤️", "👍", "🔥", "😂", "😮", "🙏", "👏", "🎉")


class Route(str, enum.Enum):
    BUTTON = "button"
    WIZARD = "wizard"
    LEGACY_BUTTON = "legacy_button"
    COMMAND = "command"
    IGNORED = "ignored"
    DROPPED = "dropped"


class MessageRouter:
    """Turns one raw inbound message into exactly one routing decision.

    Precedence: native button reply, empty body, pending wizard, legacy
    ``btn_`` text, prefixed command. The auto-reaction runs beside whichever
    of those handled the message.
    """

    def __init__(
        self,
        *,
        session: SessionView,
        settings: BotSettings,
        plugins: PluginRegistry,
        wizard: WizardTracker,
        interactions: InteractionStore | None = None,
        dispatcher: ButtonDispatcher | None = None,
        task_group: TaskGroup | None = None,
        reactions: Sequence[str] = AUTO_REACTIONS,
        choice: Callable[[Sequence[str]], str] = random.choice,
    ) -> None:
        self._session = session
        self._settings = settings
        self._plugins = plugins
        self._wizard = wizard
        self._interactions = (
            interactions if interactions is not None else InteractionStore()
        )
        self._dispatcher = dispatcher or ButtonDispatcher()
        self._task_group = task_group
        self._reactions = tuple(reactions)
        self._choice = choice

    @property
    def wizard(self) -> WizardTracker:
        return self._wizard

    @property
    def interactions(self) -> InteractionStore:
        return self._interactions

    def _context(self, msg: InboundMessage, conn: Connection) -> MessageContext:
        return MessageContext(
            msg=msg,
            conn=conn,
            session=self._session,
            settings=self._settings,
            plugins=self._plugins,
            wizard=self._wizard,
            interactions=self._interactions,
        )

    def classify(self, msg: InboundMessage) -> Route:
        """Routing decision without side effects (the wizard is only peeked)."""
        if msg.button_id is not None:
            return Route.BUTTON
        if not msg.body:
            return Route.DROPPED
        if self._wizard.peek(msg.sender) is not None:
            return Route.WIZARD
        if is_legacy_button(msg.body):
            return Route.LEGACY_BUTTON
        if msg.command is not None:
            return Route.COMMAND
        return Route.IGNORED

    async def route(self, raw: dict[str, Any], conn: Connection) -> Route:
        session_id = self._session.session_id
        msg: InboundMessage | None = None
        ctx: MessageContext | None = None
        route = Route.DROPPED
        try:
            msg = parse_inbound(raw, own_jid=conn.own_jid, prefix=self._settings.prefix)
            if msg is None:
                logger.debug("router.dropped", session_id=session_id, reason="malformed")
                return Route.DROPPED
            ctx = self._context(msg, conn)
            route = await self._handle(ctx)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "router.failed",
                session_id=session_id,
                message_id=msg.id if msg is not None else None,
                route=route.value,
                error=str(exc),
                error_type=exc.__class__.__name__,
                exc_info=True,
            )
        if (
            route is not Route.DROPPED
            and ctx is not None
            and self._task_group is not None
            and self._should_react(ctx.msg)
        ):
            self._task_group.start_soon(self._auto_react, ctx)
        return route

    async def _handle(self, ctx: MessageContext) -> Route:
        msg = ctx.msg
        session_id = ctx.session_id
        if msg.button_id is not None:
            logger.info(
                "router.button",
                session_id=session_id,
                message_id=msg.id,
                button_id=msg.button_id,
            )
            await self._dispatcher.dispatch(
                msg.button_id, ctx, self._interactions.get(msg.sender)
            )
            return Route.BUTTON

        if not msg.body:
            return Route.DROPPED

        state = self._wizard.consume(msg.sender)
        if state is not None:
            logger.info(
                "router.wizard",
                session_id=session_id,
                message_id=msg.id,
                tag=state.tag,
            )
            try:
                await complete_wizard(state, ctx)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "router.wizard_failed",
                    session_id=session_id,
                    message_id=msg.id,
                    tag=state.tag,
                    error=str(exc),
                    error_type=exc.__class__.__name__,
                    exc_info=True,
                )
            return Route.WIZARD

        if is_legacy_button(msg.body):
            button_id = msg.body.strip()
            logger.info(
                "router.legacy_button",
                session_id=session_id,
                message_id=msg.id,
                button_id=button_id,
            )
            await self._dispatcher.dispatch(
                button_id, ctx, self._interactions.get(msg.sender)
            )
            return Route.LEGACY_BUTTON

        if msg.command is not None:
            logger.info(
                "router.command",
                session_id=session_id,
                message_id=msg.id,
                command=msg.command,
            )
            claimed = await self._plugins.execute(msg.command, ctx, msg.args)
            if not claimed:
                await run_builtin(msg.command, ctx)
            return Route.COMMAND

        return Route.IGNORED

    def _should_react(self, msg: InboundMessage) -> bool:
        return self._settings.auto_react and not msg.from_me and bool(self._reactions)

    async def _auto_react(self, ctx: MessageContext) -> None:
        try:
            await ctx.react(self._choice(self._reactions))
        except Exception as exc:  # noqa: BLE001
            logger.debug(
                "router.auto_react_failed",
                session_id=ctx.session_id,
                error=str(exc),
            )
