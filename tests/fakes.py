from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from datetime import datetime
from typing import Any

import anyio

from sessionbot.context import MessageContext
from sessionbot.inbound import parse_inbound
from sessionbot.model import ConnectionState, SessionInfo
from sessionbot.plugins import PluginRegistry
from sessionbot.settings import BotSettings
from sessionbot.transport import (
    ConnectionEvent,
    GroupMetadata,
    OutgoingContent,
    Participant,
    TextContent,
)
from sessionbot.wizard import WizardTracker

OWN_JID = "15550000000@s.whatsapp.net"
OWNER = "15551112222"
STRANGER = "15553334444"
GROUP = "120363000000000001@g.us"


class FakeConnection:
    def __init__(
        self,
        *,
        own_jid: str = OWN_JID,
        credentials: bytes | None = None,
        groups: dict[str, GroupMetadata] | None = None,
    ) -> None:
        self._own_jid = own_jid
        self._credentials = credentials
        self._send, self._receive = anyio.create_memory_object_stream[ConnectionEvent](
            100
        )
        self.groups = dict(groups or {})
        self.sent: list[tuple[str, OutgoingContent, dict[str, Any] | None]] = []
        self.privacy_calls: list[tuple[str, str]] = []
        self.disappearing_calls: list[int] = []
        self.closed = False
        self.fail_sends = False
        self.fail_privacy = False

    @property
    def own_jid(self) -> str:
        return self._own_jid

    @property
    def credentials(self) -> bytes | None:
        return self._credentials

    async def events(self) -> AsyncIterator[ConnectionEvent]:
        async with self._receive:
            async for event in self._receive:
                yield event

    async def emit(self, event: ConnectionEvent) -> None:
        await self._send.send(event)

    async def send_message(
        self,
        jid: str,
        content: OutgoingContent,
        *,
        quoted: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        if self.fail_sends:
            raise RuntimeError("send failed")
        self.sent.append((jid, content, quoted))
        return {"key": {"id": f"OUT{len(self.sent)}"}}

    async def group_metadata(self, jid: str) -> GroupMetadata:
        try:
            return self.groups[jid]
        except KeyError:
            raise RuntimeError(f"unknown group {jid}") from None

    async def update_privacy_setting(self, name: str, value: str) -> None:
        if self.fail_privacy:
            raise RuntimeError("privacy update rejected")
        self.privacy_calls.append((name, value))

    async def update_disappearing_mode(self, seconds: int) -> None:
        if self.fail_privacy:
            raise RuntimeError("privacy update rejected")
        self.disappearing_calls.append(seconds)

    async def close(self) -> None:
        self.closed = True
        self._send.close()

    def texts(self) -> list[str]:
        return [
            content.text for _, content, _ in self.sent if isinstance(content, TextContent)
        ]


class FakeFactory:
    id = "fake"

    def __init__(self) -> None:
        self.connections: list[FakeConnection] = []
        self.credentials_seen: list[bytes | None] = []
        self.failures: list[Exception] = []

    async def connect(
        self, session_id: str, credentials: bytes | None
    ) -> FakeConnection:
        _ = session_id
        self.credentials_seen.append(credentials)
        await anyio.sleep(0)
        if self.failures:
            raise self.failures.pop(0)
        conn = FakeConnection(credentials=credentials)
        self.connections.append(conn)
        return conn


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await anyio.sleep(0)


class FakeSession:
    def __init__(self, session_id: str = "main") -> None:
        self._session_id = session_id
        self.started_at = datetime(2024, 1, 1, 12, 0, 0)

    @property
    def session_id(self) -> str:
        return self._session_id

    def snapshot(self) -> SessionInfo:
        return SessionInfo(
            session_id=self._session_id,
            state=ConnectionState.CONNECTED,
            reconnect_attempts=1,
            max_reconnect_attempts=3,
            created_at=self.started_at,
            started_at=self.started_at,
            last_activity=datetime(2024, 1, 1, 12, 30, 15),
            running=True,
        )


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    with anyio.fail_after(timeout):
        while not predicate():
            await anyio.sleep(0.001)


def make_settings(**overrides: Any) -> BotSettings:
    data: dict[str, Any] = {
        "privileged_senders": [OWNER],
        "reconnect": {"max_attempts": 3, "base_delay_s": 5.0, "delay_cap_s": 12.0},
        "timeouts": {"connect_s": 1.0, "send_s": 1.0},
    }
    data.update(overrides)
    return BotSettings.model_validate(data)


def text_message(
    body: str,
    *,
    chat: str | None = None,
    sender: str = STRANGER,
    from_me: bool = False,
    msg_id: str = "MSG1",
) -> dict[str, Any]:
    sender_jid = f"{sender}@s.whatsapp.net"
    key: dict[str, Any] = {
        "id": msg_id,
        "remoteJid": chat or sender_jid,
        "fromMe": from_me,
    }
    if chat is not None and chat.endswith("@g.us"):
        key["participant"] = sender_jid
    return {
        "key": key,
        "message": {"conversation": body},
        "pushName": "Tester",
        "messageTimestamp": 1704110400,
    }


def button_reply(
    button_id: str,
    *,
    text: str | None = None,
    chat: str | None = None,
    sender: str = STRANGER,
) -> dict[str, Any]:
    raw = text_message(text or "", chat=chat, sender=sender)
    message: dict[str, Any] = {
        "buttonsResponseMessage": {
            "selectedButtonId": button_id,
            "selectedDisplayText": "Pick",
        }
    }
    if text is not None:
        message["conversation"] = text
    raw["message"] = message
    return raw


def group_metadata(
    *,
    admins: tuple[str, ...] = (OWNER,),
    members: tuple[str, ...] = (STRANGER,),
) -> GroupMetadata:
    participants = [
        Participant(id=f"{user}@s.whatsapp.net", admin="admin", name=f"Admin {user}")
        for user in admins
    ]
    participants += [
        Participant(id=f"{user}@s.whatsapp.net", notify=f"Member {user}")
        for user in members
    ]
    return GroupMetadata(id=GROUP, subject="Test Group!", participants=participants)


def make_context(
    raw: dict[str, Any],
    *,
    conn: FakeConnection | None = None,
    settings: BotSettings | None = None,
    plugins: PluginRegistry | None = None,
    wizard: WizardTracker | None = None,
) -> MessageContext:
    conn = conn or FakeConnection()
    settings = settings or make_settings()
    msg = parse_inbound(raw, own_jid=conn.own_jid, prefix=settings.prefix)
    assert msg is not None
    return MessageContext(
        msg=msg,
        conn=conn,
        session=FakeSession(),
        settings=settings,
        plugins=plugins if plugins is not None else PluginRegistry(),
        wizard=wizard if wizard is not None else WizardTracker(),
    )
