import threading
from collections import OrderedDict
from typing import Optional, Protocol

from .models import ChatMessage


DEFAULT_MAX_MESSAGES = 10000


class MessageStore(Protocol):
    def get(self, message_id: str) -> Optional[ChatMessage]:
        ...

    def put(self, message: ChatMessage) -> None:
        ...


class MemoryMessageStore:
    """进程内消息存储（LRU），最多保留 max_size 条，进程重启后历史丢失。"""

    def __init__(self, max_size: int = DEFAULT_MAX_MESSAGES) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self._max_size = max_size
        self._messages: "OrderedDict[str, ChatMessage]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, message_id: str) -> Optional[ChatMessage]:
        with self._lock:
            message = self._messages.get(message_id)
            if message is not None:
                self._messages.move_to_end(message_id)
            return message

    def put(self, message: ChatMessage) -> None:
        with self._lock:
            self._messages[message.id] = message
            self._messages.move_to_end(message.id)
            while len(self._messages) > self._max_size:
                self._messages.popitem(last=False)
