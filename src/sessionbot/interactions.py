"""Data a handler prepares for the buttons it just sent.

A button click arrives as a separate inbound message, so whatever the
follow-up action needs (the inspected media, the participant list, an upload
callable) is kept per sender until the click is routed.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from .transport import Participant


@dataclass(frozen=True, slots=True)
class MediaAttachment:
    data: bytes
    media_type: str
    mimetype: str | None = None
    caption: str | None = None
    width: int | None = None
    height: int | None = None


@dataclass(frozen=True, slots=True)
class Interaction:
    """Short-lived data a handler hands to later button dispatches.

    ``chat_id`` pins group data to the chat it was fetched for.
    """

    participants: tuple[Participant, ...] | None = None
    media: MediaAttachment | None = None
    upload: Callable[[str], Awaitable[str]] | None = None
    chat_id: str | None = None


class InteractionStore:
    """Latest interaction per sender; read by every button dispatch until it expires.

    Unlike wizard states, interactions are not consumed on read: one media
    message can be inspected and then downloaded from the same button set.
    ``ttl_s == 0`` keeps entries until they are discarded or cleared.
    """

    def __init__(
        self,
        *,
        ttl_s: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_s = ttl_s
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[Interaction, float]] = {}

    def remember(self, sender: str, interaction: Interaction) -> None:
        with self._lock:
            self._entries[sender] = (interaction, self._clock())

    def get(self, sender: str) -> Interaction | None:
        with self._lock:
            entry = self._entries.get(sender)
            if entry is None:
                return None
            interaction, created_at = entry
            if self._ttl_s > 0 and self._clock() - created_at >= self._ttl_s:
                del self._entries[sender]
                return None
            return interaction

    def discard(self, sender: str) -> None:
        with self._lock:
            self._entries.pop(sender, None)

    def clear_all(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
