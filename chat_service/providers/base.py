"""上游客户端抽象接口。

Chat Relay 不关心当前是哪种集成模式，只依赖此协议：

- 每种模式实现一个 ChatClient（ChatGPTAPIClient / UnofficialProxyClient）。
- build_send_options: 由调用方的会话上下文构造本轮参数，两种模式的线程化规则不同。
- send_message: 发送一条消息，流式回调增量，返回完整的助手消息。
"""

from typing import Optional, Protocol

from chat_service.domain.models import ApiModel, ChatMessage, ConversationContext, SendOptions


class ChatClient(Protocol):
    """上游对话客户端协议。"""

    name: str
    api_model: ApiModel

    def build_send_options(
        self,
        last_context: Optional[ConversationContext],
        system_message: Optional[str],
        timeout_ms: int,
    ) -> SendOptions:
        ...

    def send_message(self, text: str, options: SendOptions) -> ChatMessage:
        ...
