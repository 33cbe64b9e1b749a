import logging

import structlog

from sessionbot.logging import (
    SafeStreamHandler,
    bind_session,
    clear_context,
    redact_secrets_processor,
    setup_logging,
)

SECRET = "QUJDREVGR0hJSktMTU5PUFFSU1RVVldYWVphYmNkZWZnaGlqa2xtbm9wcXJzdHV2d3h5eg=="


class TestRedactSecretsProcessor:
    def test_redacts_blob_in_event(self) -> None:
        event = redact_secrets_processor(None, "info", {"event": f"creds {SECRET} saved"})
        assert SECRET not in event["event"]
        assert event["event"] == "creds [REDACTED] saved"

    def test_redacts_blob_in_error(self) -> None:
        event = redact_secrets_processor(
            None, "warning", {"event": "session.connect_failed", "error": SECRET}
        )
        assert event["error"] == "[REDACTED]"

    def test_short_values_unchanged(self) -> None:
        original = {"event": "session.started", "session_id": "main", "attempt": 2}
        assert redact_secrets_processor(None, "info", dict(original)) == original


def test_bound_session_id_reaches_event_dict() -> None:
    clear_context()
    try:
        bind_session("main", attempt=1)
        merged = structlog.contextvars.merge_contextvars(None, "info", {"event": "x"})
    finally:
        clear_context()
    assert merged == {"event": "x", "session_id": "main", "attempt": 1}


def test_setup_logging_installs_safe_handler() -> None:
    setup_logging(debug=True)
    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert any(isinstance(handler, SafeStreamHandler) for handler in root.handlers)

    setup_logging(debug=False)
    assert logging.getLogger().level == logging.INFO
