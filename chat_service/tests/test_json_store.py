import json

import pytest

from chat_service.domain.exceptions import BusinessError
from chat_service.domain.models import ChatMessage
from chat_service.infrastructure.storage.json_store import JsonMessageStore


def test_json_store_put_and_get(tmp_path):
    store = JsonMessageStore(root=tmp_path)
    msg = ChatMessage(
        role="assistant",
        id="chatcmpl-1",
        text="hello",
        parent_message_id="u1",
        detail={"id": "chatcmpl-1"},
    )

    store.put(msg)
    loaded = store.get("chatcmpl-1")

    assert loaded.text == "hello"
    assert loaded.parent_message_id == "u1"
    assert loaded.detail is None
    saved = json.loads((tmp_path / "messages" / "chatcmpl-1.json").read_text(encoding="utf-8"))
    assert "detail" not in saved
    assert list((tmp_path / "messages").glob("*.tmp")) == []


def test_json_store_survives_new_instance(tmp_path):
    JsonMessageStore(root=tmp_path).put(ChatMessage(role="user", id="u1", text="你好"))

    assert JsonMessageStore(root=tmp_path).get("u1").text == "你好"


def test_json_store_unknown_and_unsafe_ids(tmp_path):
    store = JsonMessageStore(root=tmp_path)

    assert store.get("missing") is None
    assert store.get("../etc/passwd") is None
    with pytest.raises(BusinessError) as exc:
        store.put(ChatMessage(role="user", id="../escape"))
    assert exc.value.code == "STORE_WRITE_ERROR"


def test_json_store_corrupt_file(tmp_path):
    store = JsonMessageStore(root=tmp_path)
    (tmp_path / "messages" / "bad.json").write_text("{not json", encoding="utf-8")

    with pytest.raises(BusinessError) as exc:
        store.get("bad")
    assert exc.value.code == "STORE_READ_ERROR"
