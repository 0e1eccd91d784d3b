import json

import pytest

from chat_service.domain.exceptions import ApiError
from chat_service.domain.models import ConversationContext, SendOptions
from chat_service.providers.registry import DEFAULT_REVERSE_PROXY_MODEL, DEFAULT_REVERSE_PROXY_URL
from chat_service.providers.unofficial_proxy import UnofficialProxyClient, UnofficialProxyOptions
from chat_service.tests.fakes import FakeResponse, fake_client_class


def _event(text, conversation_id="conv-1", message_id="msg-1"):
    return "data: " + json.dumps(
        {
            "conversation_id": conversation_id,
            "message": {"id": message_id, "content": {"content_type": "text", "parts": [text]}},
        }
    )


def test_unofficial_proxy_stream(monkeypatch):
    lines = [_event("He"), _event("Hello"), "data: [DONE]"]
    captured = {}
    monkeypatch.setattr("httpx.Client", fake_client_class(FakeResponse(lines=lines), captured))
    client = UnofficialProxyClient(UnofficialProxyOptions(access_token="token"))
    seen = []

    msg = client.send_message("hi", SendOptions(timeout_ms=1000, on_progress=lambda p: seen.append(p.text)))

    assert seen == ["He", "Hello"]
    assert msg.text == "Hello"
    assert msg.id == "msg-1"
    assert msg.conversation_id == "conv-1"
    assert captured["url"] == DEFAULT_REVERSE_PROXY_URL
    assert captured["headers"]["Authorization"] == "Bearer token"
    body = captured["json"]
    assert body["action"] == "next"
    assert body["model"] == DEFAULT_REVERSE_PROXY_MODEL
    assert body["messages"][0]["content"]["parts"] == ["hi"]
    assert body["parent_message_id"]
    assert "conversation_id" not in body


def test_unofficial_proxy_continues_conversation(monkeypatch):
    captured = {}
    monkeypatch.setattr("httpx.Client", fake_client_class(FakeResponse(lines=[_event("ok")]), captured))
    client = UnofficialProxyClient(UnofficialProxyOptions(access_token="token", model="gpt-4"))

    client.send_message("again", SendOptions(timeout_ms=1000, parent_message_id="msg-1", conversation_id="conv-1"))

    body = captured["json"]
    assert body["parent_message_id"] == "msg-1"
    assert body["conversation_id"] == "conv-1"
    assert body["model"] == "gpt-4"


def test_unofficial_proxy_error(monkeypatch):
    monkeypatch.setattr("httpx.Client", fake_client_class(FakeResponse(status_code=403, text="forbidden")))
    client = UnofficialProxyClient(UnofficialProxyOptions(access_token="token"))

    with pytest.raises(ApiError) as exc:
        client.send_message("hi", SendOptions(timeout_ms=1000))

    assert exc.value.http_status == 403


def test_build_send_options_forwards_whole_context():
    client = UnofficialProxyClient(UnofficialProxyOptions(access_token="token"))
    ctx = ConversationContext(parent_message_id="p1", conversation_id="c1")

    options = client.build_send_options(ctx, "ignored", 5000)

    assert options.parent_message_id == "p1"
    assert options.conversation_id == "c1"
    assert options.system_message is None
    assert options.timeout_ms == 5000
