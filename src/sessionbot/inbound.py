from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

import msgspec

from .ids import decode_jid, is_group_jid, jid_user
from .logging import get_logger

logger = get_logger(__name__)

_COMMAND_NAME_RE = re.compile(r"\S*")


class _Payload(msgspec.Struct, rename="camel", forbid_unknown_fields=False):
    pass


class MessageKey(_Payload):
    id: str | None = None
    remote_jid: str | None = None
    from_me: bool = False
    participant: str | None = None


class ExtendedText(_Payload):
    text: str | None = None


class MediaCaption(_Payload):
    caption: str | None = None
    mimetype: str | None = None


class ButtonsResponse(_Payload):
    selected_button_id: str | None = None
    selected_display_text: str | None = None


class SingleSelectReply(_Payload):
    selected_row_id: str | None = None


class ListResponse(_Payload):
    title: str | None = None
    single_select_reply: SingleSelectReply | None = None


class TemplateButtonReply(_Payload):
    selected_id: str | None = None
    selected_display_text: str | None = None


class NativeFlowResponse(_Payload):
    name: str | None = None
    params_json: str | None = None


class InteractiveResponse(_Payload):
    native_flow_response_message: NativeFlowResponse | None = None


class FutureProof(_Payload):
    message: MessageContent | None = None


class MessageContent(_Payload):
    conversation: str | None = None
    extended_text_message: ExtendedText | None = None
    image_message: MediaCaption | None = None
    video_message: MediaCaption | None = None
    buttons_response_message: ButtonsResponse | None = None
    list_response_message: ListResponse | None = None
    template_button_reply_message: TemplateButtonReply | None = None
    interactive_response_message: InteractiveResponse | None = None
    ephemeral_message: FutureProof | None = None
    view_once_message: FutureProof | None = None
    view_once_message_v2: FutureProof | None = None


class WebMessage(_Payload):
    key: MessageKey | None = None
    message: MessageContent | None = None
    push_name: str | None = None
    message_timestamp: Any = None


@dataclass(frozen=True, slots=True)
class InboundMessage:
    id: str
    chat_id: str
    sender: str
    is_group: bool
    from_me: bool
    push_name: str
    body: str
    command: str | None
    args: str
    button_id: str | None
    timestamp: int | None
    key: dict[str, Any]
    raw: dict[str, Any] | None = None

    @property
    def sender_user(self) -> str:
        return jid_user(self.sender)

    @property
    def is_native_reply(self) -> bool:
        return self.button_id is not None


def unwrap_content(content: MessageContent) -> MessageContent:
    """Strip ephemeral / view-once wrappers around the real content."""
    seen = 0
    while seen < 4:
        wrapper = (
            content.ephemeral_message
            or content.view_once_message
            or content.view_once_message_v2
        )
        if wrapper is None or wrapper.message is None:
            return content
        content = wrapper.message
        seen += 1
    return content


def extract_text(content: MessageContent) -> str:
    if content.conversation:
        return content.conversation
    if content.extended_text_message and content.extended_text_message.text:
        return content.extended_text_message.text
    if content.image_message and content.image_message.caption:
        return content.image_message.caption
    if content.video_message and content.video_message.caption:
        return content.video_message.caption
    return ""


def _native_flow_id(params_json: str | None) -> str | None:
    if not params_json:
        return None
    try:
        params = msgspec.json.decode(params_json)
    except msgspec.DecodeError:
        return None
    if not isinstance(params, dict):
        return None
    value = params.get("id")
    return value if isinstance(value, str) and value else None


def extract_button_id(content: MessageContent) -> str | None:
    """Return the selected id of a native button, list or template reply."""
    buttons = content.buttons_response_message
    if buttons is not None and buttons.selected_button_id:
        return buttons.selected_button_id
    listed = content.list_response_message
    if listed is not None and listed.single_select_reply is not None:
        row_id = listed.single_select_reply.selected_row_id
        if row_id:
            return row_id
    template = content.template_button_reply_message
    if template is not None and template.selected_id:
        return template.selected_id
    interactive = content.interactive_response_message
    if interactive is not None and interactive.native_flow_response_message:
        return _native_flow_id(interactive.native_flow_response_message.params_json)
    return None


def split_command(body: str, prefix: str) -> tuple[str | None, str]:
    if not prefix or not body.startswith(prefix):
        return None, ""
    rest = body[len(prefix) :]
    name = _COMMAND_NAME_RE.match(rest).group(0)
    if not name:
        return None, ""
    return name.lower(), rest[len(name) :].strip()


def resolve_sender(key: MessageKey, *, chat_id: str, own_jid: str) -> str:
    if is_group_jid(chat_id):
        return decode_jid(key.participant) or chat_id
    if key.from_me:
        return decode_jid(own_jid) or own_jid
    return chat_id


def _timestamp(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_inbound(
    raw: dict[str, Any] | WebMessage,
    *,
    own_jid: str,
    prefix: str,
) -> InboundMessage | None:
    """Normalize one raw message into an :class:`InboundMessage`.

    Returns ``None`` for payloads without a usable key or content; the caller
    treats those as dropped events.
    """
    raw_dict: dict[str, Any] | None = raw if isinstance(raw, dict) else None
    if isinstance(raw, dict):
        try:
            raw = msgspec.convert(raw, type=WebMessage)
        except (msgspec.ValidationError, TypeError) as exc:
            logger.debug("inbound.malformed", error=str(exc))
            return None
    elif not isinstance(raw, WebMessage):
        logger.debug("inbound.malformed", error=f"unexpected {type(raw).__name__}")
        return None
    key = raw.key
    if key is None or not key.id or not key.remote_jid or raw.message is None:
        return None
    chat_id = decode_jid(key.remote_jid) or key.remote_jid
    content = unwrap_content(raw.message)
    body = extract_text(content)
    button_id = extract_button_id(content)
    command, args = (None, "") if button_id is not None else split_command(body, prefix)
    return InboundMessage(
        id=key.id,
        chat_id=chat_id,
        sender=resolve_sender(key, chat_id=chat_id, own_jid=own_jid),
        is_group=is_group_jid(chat_id),
        from_me=key.from_me,
        push_name=raw.push_name or "User",
        body=body,
        command=command,
        args=args,
        button_id=button_id,
        timestamp=_timestamp(raw.message_timestamp),
        key=msgspec.to_builtins(key),
        raw=raw_dict,
    )
