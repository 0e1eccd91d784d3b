import json
import logging
import sys
from datetime import date

import chat_service.infrastructure.logging.logger as log_module
from chat_service.infrastructure.logging.logger import JsonFormatter
from chat_service.prompts import load_system_prompt


def _record(msg, exc_info=None, **extra):
    record = logging.LogRecord("chat_service", logging.WARNING, __file__, 1, msg, None, exc_info)
    if extra:
        record.extra = extra
    return record


def test_json_formatter_merges_extra():
    payload = json.loads(JsonFormatter().format(_record("client.selected", api_model="ChatGPTAPI")))

    assert payload["msg"] == "client.selected"
    assert payload["level"] == "WARNING"
    assert payload["api_model"] == "ChatGPTAPI"
    assert payload["ts"].endswith("Z")


def test_json_formatter_includes_exception():
    try:
        raise ValueError("boom")
    except ValueError:
        record = _record("failed", exc_info=sys.exc_info())

    payload = json.loads(JsonFormatter().format(record))

    assert "ValueError: boom" in payload["exc"]


def test_json_formatter_redacts_content(monkeypatch, make_settings):
    monkeypatch.setattr(log_module, "settings", make_settings(log_redact_content=True))

    payload = json.loads(JsonFormatter().format(_record("x" * 200)))

    assert payload["msg"] == "x" * 64


def test_setup_logger_is_idempotent():
    first = log_module.setup_logger()
    second = log_module.setup_logger()

    assert first is second
    assert len(second.handlers) == 1


def test_default_system_prompt_has_date():
    prompt = load_system_prompt(date(2023, 3, 1))

    assert "Current date: 2023-03-01" in prompt
    assert "{current_date}" not in prompt
