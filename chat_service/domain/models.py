"""统一的对话数据模型。

本模块定义了两种上游客户端共享的标准数据结构：

- ApiModel: 当前启用的集成模式（官方 API / 反向代理）。
- ChatMessage: 一条对话消息，既是上游返回结果，也是消息存储的记录。
- ConversationContext: 调用方持有的会话上下文，每轮由上一轮的返回值替换。
- SendOptions: 单次 send_message 的参数。
- ChatRequest: Chat Relay 的入参。
- ChatConfig: 状态查询返回的配置快照。

Python 侧使用 snake_case；to_dict()/from_dict() 负责与 Web 层的 camelCase 字段互转。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Literal, Optional


class ApiModel(str, Enum):
    """集成模式，进程启动时确定，之后不再变化。"""

    KEYED_API = "ChatGPTAPI"
    REVERSE_PROXY = "ChatGPTUnofficialProxyAPI"


Role = Literal["system", "user", "assistant"]


@dataclass
class ChatMessage:
    """一条对话消息。

    - id: 消息 ID；助手消息的 id 即下一轮的 parent_message_id。
    - parent_message_id: 上一条消息的 ID。
    - conversation_id: 反向代理模式下的会话 ID。
    - detail: 上游原始响应（最后一个 chunk 或完整 JSON），用于调试。
    """

    role: Role
    id: str
    text: str = ""
    parent_message_id: Optional[str] = None
    conversation_id: Optional[str] = None
    detail: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "role": self.role,
            "id": self.id,
            "parentMessageId": self.parent_message_id,
            "conversationId": self.conversation_id,
            "text": self.text,
        }
        if self.detail is not None:
            payload["detail"] = self.detail
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        return cls(
            role=data.get("role") or "assistant",
            id=data["id"],
            text=data.get("text") or "",
            parent_message_id=data.get("parentMessageId", data.get("parent_message_id")),
            conversation_id=data.get("conversationId", data.get("conversation_id")),
            detail=data.get("detail"),
        )


@dataclass(frozen=True)
class ConversationContext:
    """调用方持有的会话上下文，本模块只读不存。"""

    parent_message_id: Optional[str] = None
    conversation_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["ConversationContext"]:
        if not data:
            return None
        return cls(
            parent_message_id=data.get("parentMessageId") or data.get("parent_message_id"),
            conversation_id=data.get("conversationId") or data.get("conversation_id"),
        )

    @classmethod
    def from_message(cls, message: ChatMessage) -> "ConversationContext":
        """由上一轮的返回消息得到下一轮的上下文。"""

        return cls(parent_message_id=message.id, conversation_id=message.conversation_id)


ProgressCallback = Callable[[ChatMessage], None]


@dataclass
class SendOptions:
    """单次 send_message 调用的参数。"""

    timeout_ms: int
    system_message: Optional[str] = None
    parent_message_id: Optional[str] = None
    conversation_id: Optional[str] = None
    message_id: Optional[str] = None
    completion_params: Dict[str, Any] = field(default_factory=dict)
    on_progress: Optional[ProgressCallback] = None


@dataclass
class ChatRequest:
    """Chat Relay 的一次请求。

    process 为可选的增量回调，每收到一段上游输出就同步调用一次。
    """

    message: str
    last_context: Optional[ConversationContext] = None
    system_message: Optional[str] = None
    completion_params: Dict[str, Any] = field(default_factory=dict)
    process: Optional[ProgressCallback] = None


@dataclass
class ChatConfig:
    """chat_config() 返回的状态快照。"""

    api_model: Optional[ApiModel]
    reverse_proxy: str
    timeout_ms: int
    socks_proxy: str
    https_proxy: str
    balance: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "apiModel": self.api_model.value if self.api_model else None,
            "reverseProxy": self.reverse_proxy,
            "timeoutMs": self.timeout_ms,
            "socksProxy": self.socks_proxy,
            "httpsProxy": self.https_proxy,
            "balance": self.balance,
        }
