"""Unit tests for the logging setup."""

import logging

import structlog

from mte_erp.core.logging import REDACTED, bind_request, configure_logging, redact_secrets


def test_secrets_are_masked():
    event = redact_secrets(None, "info", {"event": "pusher_configured", "secret": "abc", "app_id": "42"})
    assert event == {"event": "pusher_configured", "secret": REDACTED, "app_id": "42"}


def test_empty_secret_left_alone():
    assert redact_secrets(None, "info", {"event": "x", "api_key": ""})["api_key"] == ""


def test_bind_request_replaces_previous_context():
    bind_request("/tasks", actor="7", request_id="first")
    structlog.contextvars.bind_contextvars(task_id=3)

    request_id = bind_request("/teams")
    context = structlog.contextvars.get_contextvars()

    assert len(request_id) == 12
    assert context == {"request_id": request_id, "path": "/teams", "actor": None}
    structlog.contextvars.clear_contextvars()


def test_chatty_libraries_stay_at_warning():
    configure_logging("DEBUG", json_output=False)
    assert logging.getLogger("httpx").level == logging.WARNING

    configure_logging("ERROR")
    assert logging.getLogger("minio").level == logging.ERROR
    structlog.reset_defaults()
