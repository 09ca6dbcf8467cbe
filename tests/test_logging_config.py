"""Tests for log redaction helpers."""

import structlog

from authgate.logging_config import MASK, bind_request_context, mask_credentials, redact


def test_redact_keeps_prefix_only():
    assert redact("abcdefghijkl") == "abcdef…"
    assert redact("abcdefghijkl", keep=3) == "abc…"
    assert redact(None) == ""
    assert redact("") == ""


def test_mask_credentials_blanks_secret_fields():
    event = {
        "event": "token issued",
        "access_token": "eyJhbGciOiJIUzI1NiJ9.payload.sig",
        "password": "hunter2",
        "user_id": "user_1",
    }

    masked = mask_credentials(None, "info", event)

    assert masked["access_token"] == MASK
    assert masked["password"] == MASK
    assert masked["user_id"] == "user_1"


def test_mask_credentials_leaves_redacted_values():
    event = {"event": "revoked", "token": redact("abcdefghijkl")}

    assert mask_credentials(None, "info", event)["token"] == "abcdef…"


def test_bind_request_context_skips_empty_values():
    structlog.contextvars.clear_contextvars()
    try:
        bind_request_context(request_id="req-1", client_id=None)
        assert structlog.contextvars.get_contextvars() == {"request_id": "req-1"}
    finally:
        structlog.contextvars.clear_contextvars()
