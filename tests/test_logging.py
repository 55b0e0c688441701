"""Tests for structured logging helpers."""

import io
import json
import logging

import pytest
import structlog

from hookrelay.logging import (
    HANDLER_NAME,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)


def hookrelay_handlers() -> list[logging.Handler]:
    return [h for h in logging.getLogger().handlers if h.get_name() == HANDLER_NAME]


@pytest.fixture
def stream():
    """Capture hookrelay log output; restore defaults afterwards."""
    buffer = io.StringIO()
    configure_logging(level="INFO", format="json", stream=buffer)
    clear_context()

    yield buffer

    clear_context()
    configure_logging(level="INFO", format="json")


def last_event(buffer: io.StringIO) -> dict:
    return json.loads(buffer.getvalue().strip().splitlines()[-1])


class TestConfigureLogging:
    def test_structlog_logger_renders_json(self, stream):
        get_logger("hookrelay.api.test").info("Webhook subscribed", webhook_id="whk_1")

        event = last_event(stream)
        assert event["event"] == "Webhook subscribed"
        assert event["webhook_id"] == "whk_1"
        assert event["level"] == "info"
        assert event["logger"] == "hookrelay.api.test"
        assert "timestamp" in event

    def test_stdlib_logger_renders_json(self, stream):
        logging.getLogger("hookrelay.webhooks.test").warning(
            "Webhook delivery gave up after %d attempts", 5
        )

        event = last_event(stream)
        assert event["event"] == "Webhook delivery gave up after 5 attempts"
        assert event["level"] == "warning"

    def test_context_is_merged(self, stream):
        bind_context(request_id="req-1")

        logging.getLogger("hookrelay.test").info("Dispatched")

        assert last_event(stream)["request_id"] == "req-1"

    def test_reconfiguring_replaces_handler(self, stream):
        configure_logging(level="INFO", format="json", stream=stream)

        assert len(hookrelay_handlers()) == 1

    def test_text_format(self, stream):
        configure_logging(level="DEBUG", format="text", stream=stream)

        [handler] = hookrelay_handlers()
        assert isinstance(handler.formatter.processors[-1], structlog.dev.ConsoleRenderer)
        assert logging.getLogger().level == logging.DEBUG

    def test_httpx_is_quieted(self, stream):
        assert logging.getLogger("httpx").level == logging.WARNING


class TestContext:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_bind_and_unbind(self):
        bind_context(request_id="req-1", user_id="user_1")
        assert structlog.contextvars.get_contextvars() == {
            "request_id": "req-1",
            "user_id": "user_1",
        }

        unbind_context("user_id")
        assert structlog.contextvars.get_contextvars() == {"request_id": "req-1"}

    def test_clear(self):
        bind_context(request_id="req-1")
        clear_context()

        assert structlog.contextvars.get_contextvars() == {}
