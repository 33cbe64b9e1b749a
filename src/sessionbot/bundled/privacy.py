from __future__ import annotations

from ..actions import apply_privacy_setting, show_privacy_menu, show_privacy_options
from ..buttons import PRIVACY_SETTINGS
from ..context import MessageContext
from ..plugins import CLAIMED, PluginResult
from ..wizard import PRIVACY_VALUE


class PrivacyPlugin:
    """``privacy``: menu; ``privacy <setting>``: ask for a value; ``privacy <setting> <value>``: apply."""

    id = "privacy"
    aliases = ("priv",)
    description = "Change account privacy settings (owner only)"

    async def handle(
        self, ctx: MessageContext, command: str, args: str
    ) -> PluginResult:
        _ = command
        if not ctx.settings.is_privileged(ctx.msg.sender_user):
            await ctx.reply("❌ This command is owner-only.")
            return CLAIMED
        parts = args.split()
        if not parts:
            await show_privacy_menu(ctx)
            return CLAIMED
        setting = parts[0].lower()
        if setting not in PRIVACY_SETTINGS:
            await ctx.reply(
                f"❌ Unknown setting {setting!r}. Choose one of: "
                + ", ".join(PRIVACY_SETTINGS)
            )
            return CLAIMED
        if len(parts) == 1:
            ctx.wizard.set(ctx.msg.sender, PRIVACY_VALUE, setting)
            await show_privacy_options(ctx, setting)
            return CLAIMED
        await apply_privacy_setting(ctx, setting, parts[1].lower())
        return CLAIMED


plugin = PrivacyPlugin()
