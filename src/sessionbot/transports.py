from __future__ import annotations

from collections.abc import Iterable, Mapping
from importlib.metadata import EntryPoint
from typing import Protocol, runtime_checkable

from .config import ConfigError
from .plugins import (
    TRANSPORT_GROUP,
    PluginLoadFailed,
    PluginNotFound,
    list_ids,
    load_entrypoint,
)
from .transport import ConnectionFactory


@runtime_checkable
class TransportBackend(Protocol):
    id: str
    description: str

    def build(self, config: Mapping[str, object]) -> ConnectionFactory: ...


def _validate_transport_backend(backend: object, ep: EntryPoint) -> None:
    if not isinstance(backend, TransportBackend):
        raise TypeError(f"{ep.value} is not a TransportBackend")
    if backend.id != ep.name:
        raise ValueError(
            f"{ep.value} transport id {backend.id!r} does not match entrypoint {ep.name!r}"
        )


def get_transport(
    transport_id: str, *, allowlist: Iterable[str] | None = None
) -> TransportBackend:
    try:
        backend = load_entrypoint(
            TRANSPORT_GROUP,
            transport_id,
            allowlist=allowlist,
            validator=_validate_transport_backend,
        )
    except PluginNotFound as exc:
        available = ", ".join(exc.available) or "none installed"
        raise ConfigError(
            f"Unknown transport {transport_id!r}. Available: {available}."
        ) from exc
    except PluginLoadFailed as exc:
        raise ConfigError(f"Failed to load transport {transport_id!r}: {exc}") from exc
    return backend


def list_transports(*, allowlist: Iterable[str] | None = None) -> list[str]:
    return list_ids(TRANSPORT_GROUP, allowlist=allowlist)
