import json
import os
import re
from pathlib import Path
from typing import Optional
from uuid import uuid4

from chat_service.config.settings import settings
from chat_service.domain.exceptions import BusinessError
from chat_service.domain.models import ChatMessage


_SAFE_ID = re.compile(r"^[A-Za-z0-9_\-]+$")


class JsonMessageStore:
    """每条消息一个 JSON 文件：<root>/messages/<id>.json。"""

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._msg_root = self._root / "messages"
        self._msg_root.mkdir(parents=True, exist_ok=True)

    def get(self, message_id: str) -> Optional[ChatMessage]:
        path = self._path(message_id)
        if path is None or not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise BusinessError(code="STORE_READ_ERROR", message=str(e))
        return ChatMessage.from_dict(data)

    def put(self, message: ChatMessage) -> None:
        path = self._path(message.id)
        if path is None:
            raise BusinessError(code="STORE_WRITE_ERROR", message=f"invalid message id: {message.id!r}")
        tmp_path = self._msg_root / f"{message.id}.{uuid4().hex}.json.tmp"
        payload = message.to_dict()
        # detail 可能很大且只用于调试，不落盘
        payload.pop("detail", None)
        try:
            tmp_path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))

    def _path(self, message_id: str) -> Optional[Path]:
        if not message_id or not _SAFE_ID.match(message_id):
            return None
        return self._msg_root / f"{message_id}.json"
