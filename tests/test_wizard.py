from datetime import datetime

import pytest

from sessionbot.transport import TextContent
from sessionbot.wizard import (
    CUSTOM_TAG_MESSAGE,
    PRIVACY_VALUE,
    WizardState,
    WizardTracker,
    complete_wizard,
    interpolate_placeholders,
)
from tests.fakes import (
    GROUP,
    OWNER,
    FakeConnection,
    make_context,
    text_message,
)


class _Clock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_set_overwrites_and_consume_deletes() -> None:
    tracker = WizardTracker()
    tracker.set("a@s", CUSTOM_TAG_MESSAGE, ["x"])
    tracker.set("a@s", PRIVACY_VALUE, "lastseen")

    state = tracker.consume("a@s")

    assert state is not None
    assert state.tag == PRIVACY_VALUE
    assert state.payload == "lastseen"
    assert tracker.consume("a@s") is None
    assert len(tracker) == 0


def test_states_are_per_sender() -> None:
    tracker = WizardTracker()
    tracker.set("a@s", CUSTOM_TAG_MESSAGE)
    assert tracker.consume("b@s") is None
    assert tracker.peek("a@s") is not None


def test_clear_all() -> None:
    tracker = WizardTracker()
    tracker.set("a@s", CUSTOM_TAG_MESSAGE)
    tracker.set("b@s", CUSTOM_TAG_MESSAGE)
    tracker.clear_all()
    assert len(tracker) == 0


def test_expired_state_is_absent() -> None:
    clock = _Clock()
    tracker = WizardTracker(ttl_s=60, clock=clock)
    tracker.set("a@s", CUSTOM_TAG_MESSAGE)

    clock.now += 59
    assert tracker.peek("a@s") is not None
    clock.now += 1
    assert tracker.consume("a@s") is None
    assert len(tracker) == 0


def test_zero_ttl_never_expires() -> None:
    clock = _Clock()
    tracker = WizardTracker(ttl_s=0, clock=clock)
    tracker.set("a@s", CUSTOM_TAG_MESSAGE)
    clock.now += 10_000_000
    assert tracker.consume("a@s") is not None


def test_interpolate_placeholders() -> None:
    now = datetime(2024, 3, 9, 7, 5, 3)
    text = interpolate_placeholders(
        "{count} people at {time} on {date} ({count})", count=12, now=now
    )
    assert text == "12 people at 07:05:03 on 2024-03-09 (12)"


@pytest.mark.anyio
async def test_custom_tag_completion_mentions_stored_members() -> None:
    conn = FakeConnection()
    ctx = make_context(text_message("Meeting for {count}", chat=GROUP), conn=conn)
    members = ["1@s.whatsapp.net", "2@s.whatsapp.net"]
    state = WizardState(tag=CUSTOM_TAG_MESSAGE, payload=members, created_at=0.0)

    await complete_wizard(state, ctx)

    assert len(conn.sent) == 1
    jid, content, quoted = conn.sent[0]
    assert jid == GROUP
    assert isinstance(content, TextContent)
    assert content.text.startswith("Meeting for 2\n\n🏷️ Tagged by: @")
    assert content.mentions == members
    assert quoted is not None


@pytest.mark.anyio
async def test_privacy_value_completion_applies_setting() -> None:
    conn = FakeConnection()
    ctx = make_context(text_message(" Contacts ", sender=OWNER), conn=conn)
    state = WizardState(tag=PRIVACY_VALUE, payload="profile", created_at=0.0)

    await complete_wizard(state, ctx)

    assert conn.privacy_calls == [("profile", "contacts")]


@pytest.mark.anyio
async def test_unknown_tag_is_dropped() -> None:
    conn = FakeConnection()
    ctx = make_context(text_message("anything"), conn=conn)
    state = WizardState(tag="awaiting_poll_answer", payload=None, created_at=0.0)

    await complete_wizard(state, ctx)

    assert conn.sent == []
