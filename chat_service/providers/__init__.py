"""上游 Provider 集成层。

该包下的模块负责：
- 定义客户端抽象接口 (base)。
- 维护默认地址、token 预算、错误码提示 (registry)。
- 提供两种集成模式的具体实现 (chatgpt_api、unofficial_proxy)。
- 出站代理 (proxy) 与 REST 辅助客户端 (openai_rest)。

本模块的 create_client 根据凭证选择集成模式，get_client 提供进程内唯一实例。
"""

import threading
from typing import Optional

from chat_service.config.settings import settings
from chat_service.domain.conversation import MemoryMessageStore, MessageStore
from chat_service.domain.exceptions import ConfigurationError
from chat_service.infrastructure.logging.logger import logger
from chat_service.infrastructure.storage.json_store import JsonMessageStore
from chat_service.providers.base import ChatClient
from chat_service.providers.chatgpt_api import ChatGPTAPIClient, ChatGPTAPIOptions
from chat_service.providers.proxy import setup_proxy
from chat_service.providers.registry import DEFAULT_KEYED_MODEL, DEFAULT_REVERSE_PROXY_URL, token_budget_for
from chat_service.providers.unofficial_proxy import UnofficialProxyClient, UnofficialProxyOptions


def create_message_store(cfg=None) -> MessageStore:
    cfg = cfg or settings
    if getattr(cfg, "message_store", "memory") == "json":
        return JsonMessageStore(root=cfg.storage_root)
    return MemoryMessageStore()


def create_client(cfg=None) -> ChatClient:
    """根据凭证创建客户端：有 API Key 用 ChatGPTAPI，否则用反向代理。

    两种凭证都缺失时抛出 ConfigurationError，调用方应终止启动。
    """

    cfg = cfg or settings
    debug = not cfg.openai_api_disable_debug

    if cfg.openai_api_key:
        model = cfg.openai_api_model or DEFAULT_KEYED_MODEL
        options = ChatGPTAPIOptions(
            api_key=cfg.openai_api_key,
            completion_params={"model": model},
            debug=debug,
        )
        # gpt-4 系列放宽 token 上限
        budget = token_budget_for(model)
        if budget is not None:
            options.max_model_tokens = budget.max_model_tokens
            options.max_response_tokens = budget.max_response_tokens
        if cfg.openai_api_base_url:
            options.api_base_url = f"{cfg.openai_api_base_url.rstrip('/')}/v1"
        setup_proxy(options, cfg)
        client: ChatClient = ChatGPTAPIClient(options, message_store=create_message_store(cfg))
        logger.info("client.selected", extra={"extra": {"api_model": client.api_model.value, "model": model}})
        return client

    if cfg.openai_access_token:
        options = UnofficialProxyOptions(
            access_token=cfg.openai_access_token,
            api_reverse_proxy_url=cfg.api_reverse_proxy or DEFAULT_REVERSE_PROXY_URL,
            debug=debug,
        )
        if cfg.openai_api_model:
            options.model = cfg.openai_api_model
        setup_proxy(options, cfg)
        client = UnofficialProxyClient(options)
        logger.info(
            "client.selected",
            extra={"extra": {"api_model": client.api_model.value, "reverse_proxy": options.api_reverse_proxy_url}},
        )
        return client

    raise ConfigurationError("Missing OPENAI_API_KEY or OPENAI_ACCESS_TOKEN environment variable")


_client: Optional[ChatClient] = None
_client_lock = threading.Lock()


def get_client() -> ChatClient:
    """获取进程内唯一的客户端实例（首次调用时创建）。"""

    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = create_client()
    return _client


def init_client() -> ChatClient:
    """启动时显式初始化；凭证缺失会在这里直接抛出。"""

    return get_client()
