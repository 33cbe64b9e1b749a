from sessionbot.transport import (
    CloseReason,
    ConnectionClosed,
    ConnectionOpened,
    MessagesReceived,
    decode_event,
)


def test_decode_close_event() -> None:
    event = decode_event(
        {"type": "connection.close", "reason": "logged_out", "status_code": 401}
    )
    assert event == ConnectionClosed(reason=CloseReason.LOGGED_OUT, status_code=401)
    assert event.is_logout


def test_close_with_401_is_logout_regardless_of_reason() -> None:
    assert ConnectionClosed(status_code=401).is_logout
    assert not ConnectionClosed(reason=CloseReason.TIMED_OUT, status_code=408).is_logout


def test_decode_open_and_messages() -> None:
    assert decode_event({"type": "connection.open"}) == ConnectionOpened()
    event = decode_event({"type": "messages.upsert", "messages": [{"key": {}}]})
    assert isinstance(event, MessagesReceived)
    assert event.messages == [{"key": {}}]


def test_decode_unknown_or_malformed() -> None:
    assert decode_event({"type": "presence.update"}) is None
    assert decode_event({"type": "connection.close", "reason": "bored"}) is None
