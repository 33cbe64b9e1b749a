from __future__ import annotations

from ..buttons import BUTTON_PREFIX
from ..context import MessageContext
from ..plugins import CLAIMED, PluginResult
from ..transport import Button


class MenuPlugin:
    id = "menu"
    aliases = ("help", "start")
    description = "Show the main menu"

    async def handle(
        self, ctx: MessageContext, command: str, args: str
    ) -> PluginResult:
        _ = command, args
        prefix = ctx.settings.prefix
        commands = "\n".join(f"• {prefix}{plugin_id}" for plugin_id in ctx.plugins.ids())
        await ctx.send_buttons(
            title=f"📋 {ctx.settings.bot_name} Menu",
            text=(
                f"Hi {ctx.msg.push_name}!\n\n"
                f"Commands:\n{commands}\n"
                f"• {prefix}ping\n"
                f"• {prefix}status"
            ),
            footer=f"Prefix: {prefix}",
            buttons=[
                Button(id=f"{BUTTON_PREFIX}ping", text="🏓 Ping"),
                Button(id=f"{BUTTON_PREFIX}status", text="☁️ Status"),
                Button(id=f"{BUTTON_PREFIX}plugins", text="📦 Plugins"),
                Button(id=f"{BUTTON_PREFIX}owner", text="👑 Owner"),
            ],
        )
        return CLAIMED


plugin = MenuPlugin()
