"""Button-driven actions shared by the dispatcher, the wizard and plugins."""

from __future__ import annotations

import re
import time
from collections.abc import Sequence
from datetime import datetime

import anyio

from .buttons import (
    BUTTON_PREFIX,
    DISAPPEAR_DURATIONS,
    PRIVACY_LEVELS,
    PRIVACY_SETTINGS,
    privacy_set_id,
)
from .context import MessageContext
from .ids import jid_user, mention
from .interactions import Interaction, MediaAttachment
from .logging import get_logger
from .model import format_uptime
from .transport import Button, Participant
from .wizard import CUSTOM_TAG_MESSAGE, PRIVACY_VALUE

logger = get_logger(__name__)

_SUBJECT_SAFE_RE = re.compile(r"[^A-Za-z0-9]")

_LEVEL_LABELS = ("👁️ Everyone", "📱 My Contacts", "🙈 Nobody")
_DISAPPEAR_LABELS = ("❌ Off", "⏰ 24 Hours", "📅 7 Days", "♾️ 90 Days")
_PRIVACY_TITLES = {
    "lastseen": "👀 Last Seen Privacy",
    "profile": "📸 Profile Photo Privacy",
    "status": "📝 Status Privacy",
    "groupadd": "👥 Group Add Privacy",
    "disappear": "⏰ Disappearing Messages",
}


# -- core -----------------------------------------------------------------


async def send_ping(ctx: MessageContext) -> None:
    started = time.perf_counter()
    await ctx.reply("🏓 Pong!")
    latency_ms = (time.perf_counter() - started) * 1000
    await ctx.send_text(f"⏱️ Latency: {latency_ms:.0f}ms\n🆔 {ctx.session_id}")


def status_text(ctx: MessageContext, *, now: datetime | None = None) -> str:
    info = ctx.session.snapshot()
    now = now or datetime.now()
    return (
        f"☁️ *{ctx.settings.bot_name} Status*\n\n"
        f"• Session: {info.session_id}\n"
        f"• State: {info.state.value}\n"
        f"• Uptime: {format_uptime(info.uptime_s(now))}\n"
        f"• Reconnects: {info.reconnect_attempts}/{info.max_reconnect_attempts}\n"
        f"• Last Activity: {info.last_activity.strftime('%H:%M:%S')}"
    )


def plugin_list_text(ctx: MessageContext) -> str:
    ids = ctx.plugins.ids()
    prefix = ctx.settings.prefix
    lines = "\n".join(f"• {prefix}{plugin_id}" for plugin_id in ids)
    return f"📦 Loaded Plugins ({len(ids)}):\n{lines}".rstrip()


def owner_text(ctx: MessageContext) -> str:
    name = ctx.settings.owner_name or ctx.settings.bot_name
    contact = ctx.settings.owner_contact or "not configured"
    return f"👑 *{name}*\n\n📞 Contact: {contact}"


# -- group helpers --------------------------------------------------------


async def _group_participants(
    ctx: MessageContext, interaction: Interaction | None
) -> list[Participant] | None:
    if not ctx.msg.is_group:
        await ctx.reply("❌ This command only works in groups!")
        return None
    if (
        interaction is not None
        and interaction.participants is not None
        and interaction.chat_id in (None, ctx.chat_id)
    ):
        return list(interaction.participants)
    try:
        with anyio.fail_after(ctx.settings.timeouts.send_s):
            metadata = await ctx.conn.group_metadata(ctx.chat_id)
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "group.metadata_failed",
            session_id=ctx.session_id,
            chat_id=ctx.chat_id,
            error=str(exc),
            error_type=exc.__class__.__name__,
        )
        await ctx.reply("❌ Error fetching group information.")
        return None
    return list(metadata.participants)


def _is_admin(participants: Sequence[Participant], jid: str) -> bool:
    return any(p.id == jid and p.is_admin for p in participants)


def _discard_pending(ctx: MessageContext, tag: str) -> None:
    # A button answered the question the wizard was waiting on.
    pending = ctx.wizard.peek(ctx.msg.sender)
    if pending is not None and pending.tag == tag:
        ctx.wizard.consume(ctx.msg.sender)


# -- tagging --------------------------------------------------------------


async def tag_participants(
    ctx: MessageContext,
    participants: Sequence[Participant],
    header: str,
) -> None:
    await ctx.reply(f"⏳ Tagging {len(participants)} members...")
    mentions = [p.id for p in participants]
    tags = " ".join(mention(p.id) for p in participants)
    text = (
        f"{header}\n\n{tags}\n\n"
        f"🏷️ Tagged by: {mention(ctx.msg.sender)}\n"
        f"📅 {datetime.now().strftime('%Y-%m-%d')}"
    )
    await ctx.reply(text, mentions=mentions)


async def run_tag(
    ctx: MessageContext,
    target: str,
    interaction: Interaction | None = None,
) -> None:
    participants = await _group_participants(ctx, interaction)
    if participants is None:
        return
    if not _is_admin(participants, ctx.msg.sender):
        await ctx.reply("❌ Only group admins can use this command!")
        return
    if target == "admins":
        admins = [p for p in participants if p.is_admin]
        await tag_participants(ctx, admins, "👑 *Admins!*")
    elif target == "custom":
        await request_custom_tag(ctx, participants)
    elif target == "default":
        _discard_pending(ctx, CUSTOM_TAG_MESSAGE)
        await tag_participants(ctx, participants, "👥 *Attention everyone!*")
    else:
        await tag_participants(ctx, participants, "👥 *Everyone!*")


async def request_custom_tag(
    ctx: MessageContext, participants: Sequence[Participant]
) -> None:
    ctx.wizard.set(ctx.msg.sender, CUSTOM_TAG_MESSAGE, [p.id for p in participants])
    await ctx.send_buttons(
        title="✏️ Custom Tag Message",
        text=(
            f"Members: {len(participants)}\n\n"
            "Please send your custom message now.\n"
            "Use {count} for member count, {time} for current time, "
            "{date} for today."
        ),
        footer="Mentions are added automatically",
        buttons=[
            Button(id=f"{BUTTON_PREFIX}tag_default", text="🔄 Use Default"),
            Button(id=f"{BUTTON_PREFIX}tag_cancel", text="❌ Cancel"),
        ],
    )


# -- contact export -------------------------------------------------------


def build_vcard(participants: Sequence[Participant]) -> str:
    cards = []
    for participant in participants:
        number = jid_user(participant.id)
        name = participant.name or participant.notify or f"User_{number}"
        cards.append(
            "BEGIN:VCARD\n"
            "VERSION:3.0\n"
            f"N:{name};;;;\n"
            f"FN:{name}\n"
            f"TEL;TYPE=CELL:{number}\n"
            "END:VCARD\n"
        )
    return "\n".join(cards)


async def export_vcf(
    ctx: MessageContext,
    scope: str,
    interaction: Interaction | None = None,
) -> None:
    if not ctx.msg.is_group:
        await ctx.reply("❌ VCF export only works in groups!")
        return
    try:
        with anyio.fail_after(ctx.settings.timeouts.send_s):
            metadata = await ctx.conn.group_metadata(ctx.chat_id)
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "vcf.metadata_failed",
            session_id=ctx.session_id,
            chat_id=ctx.chat_id,
            error=str(exc),
        )
        await ctx.reply("❌ Error creating contact file.")
        return
    participants = (
        list(interaction.participants)
        if interaction is not None and interaction.participants is not None
        else list(metadata.participants)
    )
    if scope == "admins":
        participants = [p for p in participants if p.is_admin]
    if not participants:
        label = "admins" if scope == "admins" else "participants"
        await ctx.reply(f"❌ No {label} found.")
        return
    await ctx.reply(f"⏳ Creating VCF for {len(participants)} contacts...")
    safe_subject = _SUBJECT_SAFE_RE.sub("_", metadata.subject) or "group"
    await ctx.send_document(
        data=build_vcard(participants).encode("utf-8"),
        file_name=f"{safe_subject}_{scope}.vcf",
        mimetype="text/vcard",
        caption=(
            "📇 *Contact Export*\n\n"
            f"Group: {metadata.subject}\n"
            f"Type: {scope}\n"
            f"Exported: {len(participants)} contacts"
        ),
    )


# -- privacy settings -----------------------------------------------------


async def show_privacy_menu(ctx: MessageContext) -> None:
    await ctx.send_buttons(
        title="🔐 Privacy Settings",
        text="Select privacy setting to configure:",
        footer="Owner Only",
        buttons=[
            Button(id=f"{BUTTON_PREFIX}priv_lastseen", text="👀 Last Seen"),
            Button(id=f"{BUTTON_PREFIX}priv_profile", text="📸 Profile Photo"),
            Button(id=f"{BUTTON_PREFIX}priv_status", text="📝 Status"),
            Button(id=f"{BUTTON_PREFIX}priv_disappear", text="⏰ Disappearing Msgs"),
            Button(id=f"{BUTTON_PREFIX}priv_groupadd", text="👥 Group Add"),
            Button(id=f"{BUTTON_PREFIX}priv_cancel", text="❌ Cancel"),
        ],
    )


async def show_privacy_options(ctx: MessageContext, setting: str) -> None:
    if setting == "disappear":
        options = [str(value) for value in DISAPPEAR_DURATIONS]
        labels = _DISAPPEAR_LABELS
    else:
        options = list(PRIVACY_LEVELS)
        labels = _LEVEL_LABELS
    buttons = [
        Button(id=privacy_set_id(setting, option), text=label)
        for option, label in zip(options, labels, strict=True)
    ]
    buttons.append(Button(id=f"{BUTTON_PREFIX}priv_back", text="🔙 Back"))
    await ctx.send_buttons(
        title=_PRIVACY_TITLES.get(setting, f"🔐 {setting.capitalize()} Privacy"),
        text="Select privacy level:",
        footer="Privacy Manager",
        buttons=buttons,
    )


def _readable_privacy_value(setting: str, value: str) -> str:
    if setting != "disappear":
        return value
    seconds = int(value)
    if seconds == 0:
        return "Off"
    return f"{seconds / 3600:g} hours"


def _valid_privacy_value(setting: str, value: str) -> bool:
    if setting == "disappear":
        return value.isdigit()
    return value in PRIVACY_LEVELS


async def apply_privacy_setting(ctx: MessageContext, setting: str, value: str) -> bool:
    """Apply one account setting on behalf of an allow-listed sender.

    Always answers in the conversation; returns whether the setting changed.
    """
    if not ctx.settings.is_privileged(ctx.msg.sender_user):
        logger.info(
            "privacy.rejected",
            session_id=ctx.session_id,
            sender=ctx.msg.sender_user,
            setting=setting,
        )
        await ctx.reply("❌ This command is owner-only.")
        return False
    _discard_pending(ctx, PRIVACY_VALUE)
    if setting not in PRIVACY_SETTINGS or not _valid_privacy_value(setting, value):
        await ctx.reply(f"❌ Invalid value {value!r} for {setting} privacy.")
        return False

    await ctx.reply(f"⏳ Updating {setting} privacy...")
    try:
        with anyio.fail_after(ctx.settings.timeouts.send_s):
            if setting == "disappear":
                await ctx.conn.update_disappearing_mode(int(value))
            else:
                await ctx.conn.update_privacy_setting(setting, value)
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "privacy.update_failed",
            session_id=ctx.session_id,
            setting=setting,
            error=str(exc),
            error_type=exc.__class__.__name__,
        )
        await ctx.reply(f"❌ Failed to update {setting} privacy.")
        return False

    logger.info("privacy.updated", session_id=ctx.session_id, setting=setting)
    await ctx.send_buttons(
        title="✅ Privacy Updated",
        text=(
            f"Setting: {setting}\n"
            f"Value: {_readable_privacy_value(setting, value)}\n\n"
            "Changes applied successfully!"
        ),
        footer="Privacy Manager",
        buttons=[
            Button(id=f"{BUTTON_PREFIX}priv_more", text="⚙️ More Settings"),
            Button(id=f"{BUTTON_PREFIX}priv_done", text="✅ Done"),
        ],
    )
    return True


# -- media and uploads ----------------------------------------------------


async def show_message_info(ctx: MessageContext) -> None:
    msg = ctx.msg
    kind = "text"
    if msg.raw and isinstance(msg.raw.get("message"), dict) and msg.raw["message"]:
        kind = next(iter(msg.raw["message"]))
    stamp = (
        datetime.fromtimestamp(msg.timestamp).strftime("%Y-%m-%d %H:%M:%S")
        if msg.timestamp
        else "unknown"
    )
    await ctx.reply(
        "*📊 Message Information*\n\n"
        f"• Message ID: {msg.id}\n"
        f"• From: {msg.chat_id}\n"
        f"• Timestamp: {stamp}\n"
        f"• Type: {kind}\n"
        f"• Push Name: {msg.push_name}"
    )


async def show_media_info(ctx: MessageContext, media: MediaAttachment) -> None:
    dimensions = (
        f"{media.width}x{media.height}"
        if media.width is not None and media.height is not None
        else "N/A"
    )
    await ctx.reply(
        "*📁 Media Details*\n\n"
        f"• Type: {media.media_type}\n"
        f"• Size: {len(media.data) / 1024:.2f} KB\n"
        f"• Dimensions: {dimensions}\n"
        f"• Caption: {media.caption or 'None'}\n"
        f"• Mimetype: {media.mimetype or 'Unknown'}"
    )


async def send_media_copy(ctx: MessageContext, media: MediaAttachment) -> None:
    await ctx.reply(f"⬇️ Downloading {media.media_type}...")
    await ctx.send_document(
        data=media.data,
        file_name=f"download_{int(time.time())}.{media.media_type}",
        mimetype=media.mimetype or "application/octet-stream",
        caption=media.caption,
    )


async def run_upload(ctx: MessageContext, service: str, interaction: Interaction) -> None:
    if interaction.upload is None:
        await ctx.reply("❌ Session expired. Please run the upload command again.")
        return
    await ctx.reply(f"⏳ Uploading to {service}...")
    try:
        url = await interaction.upload(service)
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "upload.failed",
            session_id=ctx.session_id,
            service=service,
            error=str(exc),
            error_type=exc.__class__.__name__,
        )
        await ctx.reply(f"❌ {service} upload failed. Try again or use another service.")
        return
    await ctx.send_buttons(
        title="✅ Upload Successful",
        text=f"Service: {service}\nURL: {url}",
        footer="Uploader",
        buttons=[
            Button(id=f"{BUTTON_PREFIX}url_copy", text="📋 Copy URL"),
            Button(id=f"{BUTTON_PREFIX}url_new", text="🔄 New Upload"),
            Button(id=f"{BUTTON_PREFIX}url_done", text="✅ Done"),
        ],
    )
