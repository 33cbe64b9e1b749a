from __future__ import annotations

from ..actions import tag_participants
from ..buttons import BUTTON_PREFIX
from ..context import MessageContext
from ..interactions import Interaction
from ..logging import get_logger
from ..plugins import CLAIMED, PluginResult
from ..transport import Button

logger = get_logger(__name__)


class TagAllPlugin:
    id = "tagall"
    aliases = ("tag",)
    description = "Mention every member of the group"

    async def handle(
        self, ctx: MessageContext, command: str, args: str
    ) -> PluginResult:
        _ = command
        if not ctx.msg.is_group:
            await ctx.reply("❌ This command only works in groups!")
            return CLAIMED
        if not args:
            await _remember_members(ctx)
            await ctx.send_buttons(
                title="🏷️ Tag Members",
                text="Who should be tagged?",
                footer="Group Tagger",
                buttons=[
                    Button(id=f"{BUTTON_PREFIX}tag_all", text="👥 Everyone"),
                    Button(id=f"{BUTTON_PREFIX}tag_admins", text="👑 Admins"),
                    Button(id=f"{BUTTON_PREFIX}tag_custom", text="✏️ Custom Message"),
                    Button(id=f"{BUTTON_PREFIX}tag_cancel", text="❌ Cancel"),
                ],
            )
            return CLAIMED
        metadata = await ctx.conn.group_metadata(ctx.chat_id)
        sender = metadata.participant(ctx.msg.sender)
        if sender is None or not sender.is_admin:
            await ctx.reply("❌ Only group admins can use this command!")
            return CLAIMED
        await tag_participants(ctx, metadata.participants, f"📢 *{args}*")
        return CLAIMED


async def _remember_members(ctx: MessageContext) -> None:
    # the button handlers fetch again when this is missing
    try:
        metadata = await ctx.conn.group_metadata(ctx.chat_id)
    except Exception as exc:  # noqa: BLE001
        logger.debug("tagall.metadata_failed", chat_id=ctx.chat_id, error=str(exc))
        return
    interaction = Interaction(
        participants=tuple(metadata.participants), chat_id=ctx.chat_id
    )
    ctx.interactions.remember(ctx.msg.sender, interaction)


plugin = TagAllPlugin()
