"""官方 API（ChatGPTAPI 模式）客户端。

本模块负责：

1. 根据 parent_message_id 从消息存储中回溯历史，在 token 预算内拼出 messages。
2. 调用 {api_base_url}/chat/completions，有回调时走 SSE 流式，否则一次性返回。
3. 把上游错误包装为 ApiError / NetworkError，由 Chat Relay 统一映射。
4. 把用户消息和助手消息写回消息存储，供下一轮回溯。
"""

import json
import time
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

import httpx
import tiktoken

from chat_service.domain.conversation import MemoryMessageStore, MessageStore
from chat_service.domain.exceptions import ApiError, NetworkError, RateLimitError
from chat_service.domain.models import ApiModel, ChatMessage, ConversationContext, SendOptions
from chat_service.infrastructure.logging.logger import logger
from chat_service.prompts import load_system_prompt
from chat_service.providers.proxy import TransportFactory
from chat_service.providers.registry import (
    DEFAULT_API_BASE_URL,
    DEFAULT_COMPLETION_PARAMS,
    DEFAULT_KEYED_MODEL,
    DEFAULT_TOKEN_BUDGET,
)


TokenCounter = Callable[[List[Dict[str, str]]], int]


@lru_cache(maxsize=1)
def _encoding():
    return tiktoken.get_encoding("cl100k_base")


def count_tokens(messages: List[Dict[str, str]]) -> int:
    """按 OpenAI chat 格式估算 messages 的 token 数。"""

    enc = _encoding()
    total = 3
    for message in messages:
        total += 3
        total += len(enc.encode(message.get("role", "")))
        total += len(enc.encode(message.get("content", "")))
    return total


@dataclass
class ChatGPTAPIOptions:
    api_key: str
    api_base_url: str = DEFAULT_API_BASE_URL
    completion_params: Dict[str, Any] = field(default_factory=lambda: {"model": DEFAULT_KEYED_MODEL})
    debug: bool = False
    max_model_tokens: int = DEFAULT_TOKEN_BUDGET.max_model_tokens
    max_response_tokens: int = DEFAULT_TOKEN_BUDGET.max_response_tokens
    system_message: Optional[str] = None
    transport_factory: Optional[TransportFactory] = None


class ChatGPTAPIClient:
    """ChatGPTAPI 模式客户端，进程内唯一实例，可被并发请求共享。"""

    name = "chatgpt-api"
    api_model = ApiModel.KEYED_API

    def __init__(
        self,
        options: ChatGPTAPIOptions,
        message_store: Optional[MessageStore] = None,
        token_counter: Optional[TokenCounter] = None,
    ):
        self._options = options
        self._store = message_store or MemoryMessageStore()
        self._count_tokens = token_counter or count_tokens
        self._completion_params = {**DEFAULT_COMPLETION_PARAMS, **options.completion_params}

    @property
    def options(self) -> ChatGPTAPIOptions:
        return self._options

    def build_send_options(
        self,
        last_context: Optional[ConversationContext],
        system_message: Optional[str],
        timeout_ms: int,
    ) -> SendOptions:
        """只沿用上一轮的 parent_message_id，历史由消息存储回溯。"""

        options = SendOptions(timeout_ms=timeout_ms)
        if system_message:
            options.system_message = system_message
        if last_context is not None:
            options.parent_message_id = last_context.parent_message_id
        return options

    def send_message(self, text: str, options: SendOptions) -> ChatMessage:
        message_id = options.message_id or str(uuid4())
        user_message = ChatMessage(
            role="user",
            id=message_id,
            text=text,
            parent_message_id=options.parent_message_id,
        )
        self._store.put(user_message)

        messages, num_tokens = self._build_messages(text, options)
        max_tokens = max(
            1,
            min(self._options.max_model_tokens - num_tokens, self._options.max_response_tokens),
        )
        stream = options.on_progress is not None
        payload: Dict[str, Any] = {
            "max_tokens": max_tokens,
            **self._completion_params,
            **options.completion_params,
            "messages": messages,
            "stream": stream,
        }
        if self._options.debug:
            logger.info(
                "chatgpt_api.request",
                extra={"extra": {
                    "model": payload.get("model"),
                    "max_tokens": max_tokens,
                    "num_tokens": num_tokens,
                    "messages": len(messages),
                    "stream": stream,
                }},
            )

        result = ChatMessage(role="assistant", id=str(uuid4()), parent_message_id=message_id)
        if stream:
            self._send_stream(payload, result, options)
        else:
            self._send(payload, result, options)
        result.text = result.text.strip()
        self._store.put(result)
        return result

    # ---- HTTP ----

    def _http_client(self, timeout_ms: int) -> httpx.Client:
        factory = self._options.transport_factory
        return httpx.Client(
            timeout=timeout_ms / 1000,
            transport=factory() if factory else None,
            trust_env=False,
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._options.api_key}",
            "Content-Type": "application/json",
        }

    def _url(self) -> str:
        return f"{self._options.api_base_url.rstrip('/')}/chat/completions"

    def _send(self, payload: dict, result: ChatMessage, options: SendOptions) -> None:
        try:
            with self._http_client(options.timeout_ms) as client:
                resp = client.post(self._url(), json=payload, headers=self._headers())
        except httpx.TimeoutException as e:
            raise NetworkError(code="TIMEOUT", message=f"OpenAI timed out: {e}")
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if resp.status_code >= 400:
            raise api_error(resp.status_code, resp.text)
        data = resp.json()
        result.id = data.get("id") or result.id
        choices = data.get("choices") or []
        if choices:
            message = choices[0].get("message") or {}
            result.text = message.get("content") or ""
        result.detail = data

    def _send_stream(self, payload: dict, result: ChatMessage, options: SendOptions) -> None:
        deadline = time.monotonic() + options.timeout_ms / 1000
        try:
            with self._http_client(options.timeout_ms) as client:
                with client.stream("POST", self._url(), json=payload, headers=self._headers()) as resp:
                    if resp.status_code >= 400:
                        resp.read()
                        raise api_error(resp.status_code, resp.text)
                    for line in resp.iter_lines():
                        if time.monotonic() > deadline:
                            raise NetworkError(code="TIMEOUT", message="OpenAI timed out waiting for response")
                        chunk = parse_sse_line(line)
                        if chunk is None:
                            continue
                        result.id = chunk.get("id") or result.id
                        choices = chunk.get("choices") or []
                        if not choices:
                            continue
                        delta = (choices[0].get("delta") or {}).get("content")
                        if delta:
                            result.text += delta
                            result.detail = chunk
                            options.on_progress(result)
        except httpx.TimeoutException as e:
            raise NetworkError(code="TIMEOUT", message=f"OpenAI timed out: {e}")
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))

    # ---- 上下文 ----

    def _build_messages(self, text: str, options: SendOptions) -> Tuple[List[Dict[str, str]], int]:
        """沿 parent 链向前回溯，直到超出 max_model_tokens - max_response_tokens。"""

        system_message = options.system_message or self._options.system_message or load_system_prompt()
        max_num_tokens = self._options.max_model_tokens - self._options.max_response_tokens
        head = [{"role": "system", "content": system_message}]
        history = [{"role": "user", "content": text}]
        num_tokens = self._count_tokens(head + history)

        parent_id = options.parent_message_id
        while parent_id:
            parent = self._store.get(parent_id)
            if parent is None:
                break
            candidate = [{"role": parent.role, "content": parent.text}] + history
            candidate_tokens = self._count_tokens(head + candidate)
            if candidate_tokens > max_num_tokens:
                break
            history, num_tokens = candidate, candidate_tokens
            parent_id = parent.parent_message_id
        return head + history, num_tokens


def parse_sse_line(line: str) -> Optional[dict]:
    if not line:
        return None
    data_str = line
    if data_str.startswith("data:"):
        data_str = data_str[5:].strip()
    else:
        data_str = data_str.strip()
    if not data_str or data_str == "[DONE]":
        return None
    try:
        return json.loads(data_str)
    except json.JSONDecodeError:
        return None


def api_error(status: int, body: str, provider: str = "OpenAI") -> ApiError:
    reason = body
    try:
        reason = (json.loads(body).get("error") or {}).get("message") or body
    except (json.JSONDecodeError, AttributeError):
        pass
    message = f"{provider} error {status}: {reason}"
    if status == 429:
        return RateLimitError(code="RATE_LIMIT", message=message, http_status=status)
    return ApiError(code="API_ERROR", message=message, http_status=status)
