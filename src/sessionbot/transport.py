"""Boundary types for the messaging protocol client.

The wire protocol itself is supplied by a transport plugin registered under
the ``sessionbot.transports`` entry-point group. Everything the core needs
from it is described here.
"""

from __future__ import annotations

import enum
from collections.abc import AsyncIterator
from typing import Any, Protocol, TypeAlias, runtime_checkable

import msgspec

LOGGED_OUT_STATUS = 401


class CloseReason(str, enum.Enum):
    LOGGED_OUT = "logged_out"
    CONNECTION_LOST = "connection_lost"
    CONNECTION_CLOSED = "connection_closed"
    TIMED_OUT = "timed_out"
    RESTART_REQUIRED = "restart_required"
    UNKNOWN = "unknown"


class _Event(msgspec.Struct, tag_field="type", forbid_unknown_fields=False):
    pass


class CredentialsUpdated(_Event, tag="credentials.update"):
    credentials: bytes


class ConnectionOpened(_Event, tag="connection.open"):
    pass


class ConnectionClosed(_Event, tag="connection.close"):
    reason: CloseReason = CloseReason.UNKNOWN
    status_code: int | None = None
    detail: str | None = None

    @property
    def is_logout(self) -> bool:
        return (
            self.reason is CloseReason.LOGGED_OUT
            or self.status_code == LOGGED_OUT_STATUS
        )


class MessagesReceived(_Event, tag="messages.upsert"):
    messages: list[dict[str, Any]] = msgspec.field(default_factory=list)


ConnectionEvent: TypeAlias = (
    CredentialsUpdated | ConnectionOpened | ConnectionClosed | MessagesReceived
)


class Button(msgspec.Struct, frozen=True):
    id: str
    text: str


class TextContent(msgspec.Struct, tag="text"):
    text: str
    mentions: list[str] = msgspec.field(default_factory=list)


class ReactionContent(msgspec.Struct, tag="reaction"):
    emoji: str
    key: dict[str, Any]


class ButtonsContent(msgspec.Struct, tag="buttons"):
    title: str
    text: str
    buttons: list[Button]
    footer: str | None = None


class DocumentContent(msgspec.Struct, tag="document"):
    data: bytes
    file_name: str
    mimetype: str
    caption: str | None = None


OutgoingContent: TypeAlias = (
    TextContent | ReactionContent | ButtonsContent | DocumentContent
)


class Participant(msgspec.Struct, frozen=True, forbid_unknown_fields=False):
    id: str
    admin: str | None = None
    name: str | None = None
    notify: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.admin is not None


class GroupMetadata(msgspec.Struct, forbid_unknown_fields=False):
    id: str
    subject: str
    participants: list[Participant] = msgspec.field(default_factory=list)

    def admins(self) -> list[Participant]:
        return [p for p in self.participants if p.is_admin]

    def participant(self, jid: str) -> Participant | None:
        for item in self.participants:
            if item.id == jid:
                return item
        return None


@runtime_checkable
class Connection(Protocol):
    @property
    def own_jid(self) -> str: ...

    @property
    def credentials(self) -> bytes | None: ...

    def events(self) -> AsyncIterator[ConnectionEvent]: ...

    async def send_message(
        self,
        jid: str,
        content: OutgoingContent,
        *,
        quoted: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None: ...

    async def group_metadata(self, jid: str) -> GroupMetadata: ...

    async def update_privacy_setting(self, name: str, value: str) -> None: ...

    async def update_disappearing_mode(self, seconds: int) -> None: ...

    async def close(self) -> None: ...


@runtime_checkable
class ConnectionFactory(Protocol):
    id: str

    async def connect(
        self, session_id: str, credentials: bytes | None
    ) -> Connection: ...


def decode_event(payload: dict[str, Any]) -> ConnectionEvent | None:
    """Convert a plain mapping (as produced by JSON bridges) into an event."""
    try:
        return msgspec.convert(payload, type=ConnectionEvent)
    except (msgspec.ValidationError, TypeError):
        return None
