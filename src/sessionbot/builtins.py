"""Commands answered by the core when no plugin claims them."""

from __future__ import annotations

from .actions import plugin_list_text, send_ping, status_text
from .context import MessageContext
from .logging import get_logger

logger = get_logger(__name__)

PLUGIN_LIST_COMMANDS = frozenset({"plugins", "pl"})


def unknown_command_text(command: str, prefix: str) -> str:
    return (
        f"❓ Unknown command: {prefix}{command}\n\n"
        f"Type {prefix}menu for commands\n"
        f"Type {prefix}plugins to see loaded plugins"
    )


async def run_builtin(command: str, ctx: MessageContext) -> None:
    if command == "ping":
        await send_ping(ctx)
    elif command == "status":
        await ctx.reply(status_text(ctx))
    elif command in PLUGIN_LIST_COMMANDS:
        await ctx.reply(plugin_list_text(ctx))
    elif command == "menu":
        # Rendering the menu belongs to the menu plugin.
        logger.debug("builtin.menu_unclaimed", session_id=ctx.session_id)
    else:
        await ctx.reply(unknown_command_text(command, ctx.settings.prefix))
