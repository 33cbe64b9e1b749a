"""Command plugins and entry-point discovery.

Plugins are objects exposing ``id``, ``aliases``, ``description`` and an async
``handle(ctx, command, args)``. They ship as entry points in the
``sessionbot.plugins`` group; transports use ``sessionbot.transports``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from importlib.metadata import EntryPoint, entry_points
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from .logging import get_logger

if TYPE_CHECKING:
    from .context import MessageContext

logger = get_logger(__name__)

PLUGIN_GROUP = "sessionbot.plugins"
TRANSPORT_GROUP = "sessionbot.transports"


@dataclass(frozen=True, slots=True)
class PluginResult:
    claimed: bool = True


CLAIMED = PluginResult(claimed=True)
NOT_CLAIMED = PluginResult(claimed=False)


@runtime_checkable
class CommandPlugin(Protocol):
    id: str
    aliases: tuple[str, ...]
    description: str

    async def handle(
        self, ctx: MessageContext, command: str, args: str
    ) -> PluginResult: ...


@dataclass(frozen=True, slots=True)
class PluginLoadError:
    group: str
    name: str
    value: str
    distribution: str | None
    error: str

    def __str__(self) -> str:
        dist = f" ({self.distribution})" if self.distribution else ""
        return f"{self.group}:{self.name}{dist}: {self.error}"


class PluginLoadFailed(RuntimeError):
    def __init__(self, error: PluginLoadError) -> None:
        super().__init__(str(error))
        self.error = error


class PluginNotFound(LookupError):
    def __init__(self, group: str, name: str, available: list[str]) -> None:
        super().__init__(f"{group}:{name} not found")
        self.group = group
        self.name = name
        self.available = available


def normalize_allowlist(allowlist: Iterable[str] | None) -> frozenset[str] | None:
    if allowlist is None:
        return None
    return frozenset(item.strip().lower() for item in allowlist if item.strip())


def entrypoint_distribution_name(ep: EntryPoint) -> str | None:
    dist = getattr(ep, "dist", None)
    if dist is None:
        return None
    return dist.metadata["Name"]


def is_entrypoint_allowed(ep: EntryPoint, allowlist: frozenset[str] | None) -> bool:
    """Entry points pass when the allow-list names either them or their distribution."""
    if allowlist is None:
        return True
    if ep.name.lower() in allowlist:
        return True
    dist = entrypoint_distribution_name(ep)
    return dist is not None and dist.lower() in allowlist


def _select(group: str) -> list[EntryPoint]:
    return sorted(entry_points().select(group=group), key=lambda ep: ep.name)


def list_ids(group: str, *, allowlist: Iterable[str] | None = None) -> list[str]:
    allowed = normalize_allowlist(allowlist)
    return [ep.name for ep in _select(group) if is_entrypoint_allowed(ep, allowed)]


def _load(ep: EntryPoint, group: str) -> Any:
    try:
        obj = ep.load()
        return obj() if isinstance(obj, type) else obj
    except Exception as exc:
        raise PluginLoadFailed(
            PluginLoadError(
                group=group,
                name=ep.name,
                value=ep.value,
                distribution=entrypoint_distribution_name(ep),
                error=str(exc),
            )
        ) from exc


def load_entrypoint(
    group: str,
    name: str,
    *,
    allowlist: Iterable[str] | None = None,
    validator: Callable[[Any, EntryPoint], None] | None = None,
) -> Any:
    allowed = normalize_allowlist(allowlist)
    eps = [ep for ep in _select(group) if is_entrypoint_allowed(ep, allowed)]
    for ep in eps:
        if ep.name != name:
            continue
        obj = _load(ep, group)
        if validator is not None:
            try:
                validator(obj, ep)
            except (TypeError, ValueError) as exc:
                raise PluginLoadFailed(
                    PluginLoadError(
                        group=group,
                        name=ep.name,
                        value=ep.value,
                        distribution=entrypoint_distribution_name(ep),
                        error=str(exc),
                    )
                ) from exc
        return obj
    raise PluginNotFound(group, name, [ep.name for ep in eps])


def _validate_plugin(plugin: object, ep: EntryPoint) -> None:
    if not isinstance(plugin, CommandPlugin):
        raise TypeError(f"{ep.value} is not a CommandPlugin")
    if plugin.id != ep.name:
        raise ValueError(
            f"{ep.value} plugin id {plugin.id!r} does not match entrypoint {ep.name!r}"
        )


class PluginRegistry:
    """Command plugins addressable by id or alias."""

    def __init__(self, *, allowlist: Iterable[str] | None = None) -> None:
        self._allowlist = allowlist
        self._plugins: dict[str, CommandPlugin] = {}
        self._names: dict[str, str] = {}
        self._load_errors: list[PluginLoadError] = []

    def register(self, plugin: CommandPlugin) -> None:
        plugin_id = plugin.id.lower()
        if plugin_id in self._plugins:
            raise ValueError(f"plugin {plugin_id!r} already registered")
        self._plugins[plugin_id] = plugin
        for name in (plugin_id, *(alias.lower() for alias in plugin.aliases)):
            self._names.setdefault(name, plugin_id)

    def get(self, name: str) -> CommandPlugin | None:
        plugin_id = self._names.get(name.lower())
        if plugin_id is None:
            return None
        return self._plugins[plugin_id]

    def ids(self) -> list[str]:
        return sorted(self._plugins)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._names

    def __len__(self) -> int:
        return len(self._plugins)

    def load_entrypoints(self) -> int:
        """Register every allowed plugin entry point; returns how many loaded."""
        loaded = 0
        for name in list_ids(PLUGIN_GROUP, allowlist=self._allowlist):
            try:
                plugin = load_entrypoint(
                    PLUGIN_GROUP,
                    name,
                    allowlist=self._allowlist,
                    validator=_validate_plugin,
                )
                self.register(plugin)
            except PluginLoadFailed as exc:
                self._load_errors.append(exc.error)
                logger.warning("plugins.load_failed", plugin=name, error=str(exc))
                continue
            except ValueError as exc:
                logger.warning("plugins.duplicate", plugin=name, error=str(exc))
                continue
            loaded += 1
        logger.info("plugins.loaded", count=loaded, ids=self.ids())
        return loaded

    def get_load_errors(self) -> list[PluginLoadError]:
        return list(self._load_errors)

    async def execute(
        self, command: str, ctx: MessageContext, args: str = ""
    ) -> bool:
        """Offer ``command`` to its plugin; returns whether it was claimed.

        A raising plugin is answered with a generic notice and counts as
        claimed so the built-in fallback does not also answer.
        """
        plugin = self.get(command)
        if plugin is None:
            return False
        try:
            result = await plugin.handle(ctx, command.lower(), args)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "plugin.failed",
                plugin=plugin.id,
                command=command,
                session_id=ctx.session_id,
                message_id=ctx.msg.id,
                error=str(exc),
                error_type=exc.__class__.__name__,
                exc_info=True,
            )
            await ctx.reply(f"❌ Command failed: {ctx.settings.prefix}{command}")
            return True
        return result.claimed
