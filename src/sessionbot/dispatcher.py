"""Routes a selected button identifier to the action it names."""

from __future__ import annotations

from . import actions
from .interactions import Interaction
from .buttons import (
    CoreAction,
    CoreButton,
    PrivacyMenuAction,
    PrivacyMenuButton,
    PrivacySetButton,
    TagButton,
    UnknownButton,
    UrlAction,
    UrlButton,
    VcfButton,
    ViewAction,
    ViewButton,
    parse_button,
)
from .context import MessageContext
from .logging import get_logger

logger = get_logger(__name__)

ACK_REACTION = "👆"


class ButtonDispatcher:
    def __init__(self, *, ack_reaction: str | None = ACK_REACTION) -> None:
        self._ack_reaction = ack_reaction

    async def dispatch(
        self,
        button_id: str,
        ctx: MessageContext,
        interaction: Interaction | None = None,
    ) -> None:
        """Run the action named by ``button_id``.

        ``interaction`` is what an earlier handler remembered for this sender
        (the router looks it up); without it media and upload actions report
        an expired session. Cancel and done buttons forget it.
        """
        action = parse_button(button_id)
        logger.info(
            "button.dispatch",
            session_id=ctx.session_id,
            button_id=button_id,
            action=type(action).__name__,
        )
        if self._ack_reaction:
            await ctx.react(self._ack_reaction)

        match action:
            case CoreButton(action=core):
                await self._core(core, ctx)
            case VcfButton(scope=scope):
                await actions.export_vcf(ctx, scope.value, interaction)
            case TagButton(target=target):
                await actions.run_tag(ctx, target.value, interaction)
            case ViewButton():
                await self._view(action, ctx, interaction)
            case UrlButton():
                await self._url(action, ctx, interaction)
            case PrivacyMenuButton(action=PrivacyMenuAction.SHOW, setting=setting):
                await actions.show_privacy_options(ctx, setting or "")
            case PrivacyMenuButton():
                await actions.show_privacy_menu(ctx)
            case PrivacySetButton(setting=setting, value=value):
                await actions.apply_privacy_setting(ctx, setting, value)
            case UnknownButton(button_id=unknown_id):
                await self._unknown(unknown_id, ctx)

    async def _core(self, action: CoreAction, ctx: MessageContext) -> None:
        prefix = ctx.settings.prefix
        match action:
            case CoreAction.PING:
                await actions.send_ping(ctx)
            case CoreAction.STATUS:
                await ctx.reply(actions.status_text(ctx))
            case CoreAction.PLUGINS:
                await ctx.reply(actions.plugin_list_text(ctx))
            case CoreAction.PLAY:
                await ctx.reply(f"🎵 Use `{prefix}play song name` to play music")
            case CoreAction.MENU | CoreAction.OWNER:
                handled = await ctx.plugins.execute(action.value, ctx)
                if not handled and action is CoreAction.OWNER:
                    await ctx.reply(actions.owner_text(ctx))
            case CoreAction.CONTACT_CALL | CoreAction.CONTACT_EMAIL:
                await ctx.reply(actions.owner_text(ctx))
            case CoreAction.CONTACT_SUPPORT:
                await ctx.reply(
                    f"{actions.owner_text(ctx)}\n\n"
                    f"Type {prefix}menu for commands"
                )

    async def _view(
        self,
        action: ViewButton,
        ctx: MessageContext,
        interaction: Interaction | None,
    ) -> None:
        prefix = ctx.settings.prefix
        if action.action is ViewAction.INFO:
            await actions.show_message_info(ctx)
            return
        if action.action is ViewAction.HELP:
            await ctx.reply(
                "*👁️ View Help*\n\n"
                f"Reply to a media message with {prefix}view to inspect it."
            )
            return
        if action.action is ViewAction.BACK:
            await ctx.plugins.execute("menu", ctx)
            return
        media = interaction.media if interaction is not None else None
        if media is None:
            await ctx.reply(f"❌ Session expired. Please run {prefix}view again.")
            return
        if action.action is ViewAction.INFO_FULL:
            await actions.show_media_info(ctx, media)
        else:
            await actions.send_media_copy(ctx, media)

    async def _url(
        self,
        action: UrlButton,
        ctx: MessageContext,
        interaction: Interaction | None,
    ) -> None:
        prefix = ctx.settings.prefix
        match action.action:
            case UrlAction.HELP | UrlAction.EXAMPLE:
                await ctx.reply(
                    "*🔗 Upload Help*\n\n"
                    f"Reply to a media message with {prefix}url to upload it.\n"
                    "Services: tmpfiles, catbox"
                )
            case UrlAction.COPY:
                await ctx.reply("📋 Long-press the URL above to copy it.")
            case UrlAction.NEW:
                await ctx.reply(f"🔄 Reply to another media message with {prefix}url")
            case UrlAction.UPLOAD:
                if interaction is None:
                    await ctx.reply(
                        f"❌ Session expired. Please run {prefix}url again."
                    )
                    return
                await actions.run_upload(ctx, action.service or "", interaction)

    async def _unknown(self, button_id: str, ctx: MessageContext) -> None:
        if "cancel" in button_id:
            ctx.wizard.consume(ctx.msg.sender)
            ctx.interactions.discard(ctx.msg.sender)
            await ctx.reply("✅ Operation cancelled.")
            return
        if "done" in button_id:
            ctx.interactions.discard(ctx.msg.sender)
            await ctx.reply("✅ Done.")
            return
        logger.info(
            "button.unknown", session_id=ctx.session_id, button_id=button_id
        )
        await ctx.reply(
            "❌ Unknown button action. "
            f"Type {ctx.settings.prefix}menu to see available commands."
        )
