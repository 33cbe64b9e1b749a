from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

import anyio

from .inbound import InboundMessage
from .interactions import InteractionStore
from .logging import get_logger
from .model import SessionInfo
from .transport import (
    Button,
    ButtonsContent,
    Connection,
    DocumentContent,
    OutgoingContent,
    ReactionContent,
    TextContent,
)

if TYPE_CHECKING:
    from .plugins import PluginRegistry
    from .settings import BotSettings
    from .wizard import WizardTracker

logger = get_logger(__name__)


class SessionView(Protocol):
    """Read-only view of the session a message arrived on."""

    @property
    def session_id(self) -> str: ...

    def snapshot(self) -> SessionInfo: ...


@dataclass(slots=True)
class MessageContext:
    """Everything a handler needs to answer one inbound message."""

    msg: InboundMessage
    conn: Connection
    session: SessionView
    settings: BotSettings
    plugins: PluginRegistry
    wizard: WizardTracker
    interactions: InteractionStore = field(default_factory=InteractionStore)

    @property
    def session_id(self) -> str:
        return self.session.session_id

    @property
    def chat_id(self) -> str:
        return self.msg.chat_id

    async def send(
        self,
        content: OutgoingContent,
        *,
        jid: str | None = None,
        quote: bool = False,
    ) -> dict[str, Any] | None:
        target = jid or self.msg.chat_id
        quoted = self.msg.key if quote else None
        try:
            with anyio.fail_after(self.settings.timeouts.send_s):
                return await self.conn.send_message(target, content, quoted=quoted)
        except TimeoutError:
            logger.warning(
                "send.timeout",
                session_id=self.session_id,
                chat_id=target,
                kind=type(content).__name__,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "send.failed",
                session_id=self.session_id,
                chat_id=target,
                kind=type(content).__name__,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
        return None

    async def reply(
        self, text: str, *, mentions: Sequence[str] = ()
    ) -> dict[str, Any] | None:
        return await self.send(TextContent(text=text, mentions=list(mentions)), quote=True)

    async def send_text(
        self, text: str, *, mentions: Sequence[str] = ()
    ) -> dict[str, Any] | None:
        return await self.send(TextContent(text=text, mentions=list(mentions)))

    async def react(self, emoji: str) -> None:
        await self.send(ReactionContent(emoji=emoji, key=self.msg.key))

    async def send_buttons(
        self,
        *,
        title: str,
        text: str,
        buttons: Sequence[Button],
        footer: str | None = None,
    ) -> dict[str, Any] | None:
        return await self.send(
            ButtonsContent(title=title, text=text, buttons=list(buttons), footer=footer)
        )

    async def send_document(
        self,
        *,
        data: bytes,
        file_name: str,
        mimetype: str,
        caption: str | None = None,
    ) -> dict[str, Any] | None:
        return await self.send(
            DocumentContent(
                data=data, file_name=file_name, mimetype=mimetype, caption=caption
            ),
            quote=True,
        )
