from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from .ids import jid_user, mention
from .logging import get_logger

if TYPE_CHECKING:
    from .context import MessageContext

logger = get_logger(__name__)

CUSTOM_TAG_MESSAGE = "custom_tag_message"
PRIVACY_VALUE = "privacy_value"


@dataclass(frozen=True, slots=True)
class WizardState:
    tag: str
    payload: Any
    created_at: float


class WizardTracker:
    """Single pending free-text expectation per sender.

    ``ttl_s == 0`` keeps states until they are consumed or cleared.
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
        self._states: dict[str, WizardState] = {}

    def _expired(self, state: WizardState) -> bool:
        if self._ttl_s <= 0:
            return False
        return self._clock() - state.created_at >= self._ttl_s

    def set(self, sender: str, tag: str, payload: Any = None) -> None:
        with self._lock:
            self._states[sender] = WizardState(
                tag=tag, payload=payload, created_at=self._clock()
            )

    def peek(self, sender: str) -> WizardState | None:
        with self._lock:
            state = self._states.get(sender)
            if state is not None and self._expired(state):
                del self._states[sender]
                return None
            return state

    def consume(self, sender: str) -> WizardState | None:
        with self._lock:
            state = self._states.pop(sender, None)
        if state is None:
            return None
        if self._expired(state):
            logger.debug("wizard.expired", sender=jid_user(sender), tag=state.tag)
            return None
        return state

    def clear_all(self) -> None:
        with self._lock:
            self._states.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)


def interpolate_placeholders(text: str, *, count: int, now: datetime) -> str:
    return (
        text.replace("{count}", str(count))
        .replace("{time}", now.strftime("%H:%M:%S"))
        .replace("{date}", now.strftime("%Y-%m-%d"))
    )


async def complete_wizard(state: WizardState, ctx: MessageContext) -> None:
    """Run the deferred action of a consumed wizard state."""
    if state.tag == CUSTOM_TAG_MESSAGE:
        await _complete_custom_tag(state, ctx)
        return
    if state.tag == PRIVACY_VALUE:
        from .actions import apply_privacy_setting

        setting = state.payload if isinstance(state.payload, str) else None
        if setting:
            await apply_privacy_setting(ctx, setting, ctx.msg.body.strip().lower())
        return
    logger.debug("wizard.unknown_tag", tag=state.tag)


async def _complete_custom_tag(state: WizardState, ctx: MessageContext) -> None:
    participants = state.payload if isinstance(state.payload, list) else []
    if not participants:
        return
    text = interpolate_placeholders(
        ctx.msg.body, count=len(participants), now=datetime.now()
    )
    final = f"{text}\n\n🏷️ Tagged by: {mention(ctx.msg.sender)}"
    await ctx.reply(final, mentions=participants)
