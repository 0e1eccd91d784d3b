"""反向代理（ChatGPTUnofficialProxyAPI 模式）客户端。

只有网页版 accessToken 时使用：请求发往第三方反向代理，
协议与 chat.openai.com 的 backend-api/conversation 一致：

- 请求体: {action, messages, model, parent_message_id, conversation_id?}
- 响应: SSE，每个事件携带当前完整文本 message.content.parts[0]。

会话历史由上游维护，本地只需回传 conversation_id 与 parent_message_id。
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional
from uuid import uuid4

import httpx

from chat_service.domain.exceptions import NetworkError
from chat_service.domain.models import ApiModel, ChatMessage, ConversationContext, SendOptions
from chat_service.infrastructure.logging.logger import logger
from chat_service.providers.chatgpt_api import api_error, parse_sse_line
from chat_service.providers.proxy import TransportFactory
from chat_service.providers.registry import DEFAULT_REVERSE_PROXY_MODEL, DEFAULT_REVERSE_PROXY_URL


@dataclass
class UnofficialProxyOptions:
    access_token: str
    api_reverse_proxy_url: str = DEFAULT_REVERSE_PROXY_URL
    model: str = DEFAULT_REVERSE_PROXY_MODEL
    debug: bool = False
    transport_factory: Optional[TransportFactory] = None


class UnofficialProxyClient:
    """反向代理模式客户端。"""

    name = "chatgpt-unofficial-proxy"
    api_model = ApiModel.REVERSE_PROXY

    def __init__(self, options: UnofficialProxyOptions):
        self._options = options

    @property
    def options(self) -> UnofficialProxyOptions:
        return self._options

    def build_send_options(
        self,
        last_context: Optional[ConversationContext],
        system_message: Optional[str],
        timeout_ms: int,
    ) -> SendOptions:
        """整份上一轮上下文原样透传，timeout_ms 始终取调用方传入的值。

        反向代理不支持自定义 system message，忽略该参数。
        """

        options = SendOptions(timeout_ms=timeout_ms)
        if last_context is not None:
            options.parent_message_id = last_context.parent_message_id
            options.conversation_id = last_context.conversation_id
        return options

    def send_message(self, text: str, options: SendOptions) -> ChatMessage:
        message_id = options.message_id or str(uuid4())
        body: Dict[str, Any] = {
            "action": "next",
            "messages": [
                {
                    "id": message_id,
                    "role": "user",
                    "content": {"content_type": "text", "parts": [text]},
                }
            ],
            "model": self._options.model,
            "parent_message_id": options.parent_message_id or str(uuid4()),
        }
        if options.conversation_id:
            body["conversation_id"] = options.conversation_id
        if self._options.debug:
            logger.info(
                "unofficial_proxy.request",
                extra={"extra": {
                    "url": self._options.api_reverse_proxy_url,
                    "model": self._options.model,
                    "conversation_id": options.conversation_id,
                }},
            )

        result = ChatMessage(
            role="assistant",
            id=str(uuid4()),
            parent_message_id=message_id,
            conversation_id=options.conversation_id,
        )
        headers = {
            "Authorization": f"Bearer {self._options.access_token}",
            "Accept": "text/event-stream",
            "Content-Type": "application/json",
        }
        factory = self._options.transport_factory
        deadline = time.monotonic() + options.timeout_ms / 1000
        try:
            with httpx.Client(
                timeout=options.timeout_ms / 1000,
                transport=factory() if factory else None,
                trust_env=False,
            ) as client:
                with client.stream("POST", self._options.api_reverse_proxy_url, json=body, headers=headers) as resp:
                    if resp.status_code >= 400:
                        resp.read()
                        raise api_error(resp.status_code, resp.text, provider="ChatGPT")
                    for line in resp.iter_lines():
                        if time.monotonic() > deadline:
                            raise NetworkError(code="TIMEOUT", message="ChatGPT timed out waiting for response")
                        event = parse_sse_line(line)
                        if event is None:
                            continue
                        self._apply_event(event, result, options)
        except httpx.TimeoutException as e:
            raise NetworkError(code="TIMEOUT", message=f"ChatGPT timed out: {e}")
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        result.text = result.text.strip()
        return result

    @staticmethod
    def _apply_event(event: Dict[str, Any], result: ChatMessage, options: SendOptions) -> None:
        if event.get("conversation_id"):
            result.conversation_id = event["conversation_id"]
        message = event.get("message") or {}
        if message.get("id"):
            result.id = message["id"]
        parts = (message.get("content") or {}).get("parts") or []
        text = parts[0] if parts else None
        if text and isinstance(text, str):
            result.text = text
            result.detail = event
            if options.on_progress is not None:
                options.on_progress(result)
