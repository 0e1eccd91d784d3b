"""上游 Provider 配置。

集中维护两种集成模式用到的常量：默认地址、默认模型、token 预算规则，
以及已知上游错误码对应的中英文提示。"""

from dataclasses import dataclass
from typing import Dict, Mapping, Optional


DEFAULT_API_BASE_URL = "https://api.openai.com/v1"
DEFAULT_KEYED_MODEL = "gpt-3.5-turbo"
DEFAULT_REVERSE_PROXY_URL = "https://bypass.churchless.tech/api/conversation"
DEFAULT_REVERSE_PROXY_MODEL = "text-davinci-002-render-sha"

DEFAULT_COMPLETION_PARAMS: Mapping[str, float] = {
    "temperature": 0.8,
    "top_p": 1.0,
    "presence_penalty": 1.0,
}


@dataclass
class TokenBudget:
    """单个模型的 token 上限。"""

    max_model_tokens: int
    max_response_tokens: int


DEFAULT_TOKEN_BUDGET = TokenBudget(max_model_tokens=4000, max_response_tokens=1000)


def token_budget_for(model: str) -> Optional[TokenBudget]:
    """gpt-4 系列放宽 token 上限，其他模型返回 None（沿用客户端默认值）。"""

    name = model.lower()
    if "gpt-4" not in name:
        return None
    if "32k" in name:
        return TokenBudget(max_model_tokens=32768, max_response_tokens=8192)
    return TokenBudget(max_model_tokens=8192, max_response_tokens=2048)


ERROR_CODE_MESSAGES: Dict[int, str] = {
    401: "[OpenAI] 提供错误的API密钥 | Incorrect API key provided",
    403: "[OpenAI] 服务器拒绝访问，请稍后再试 | Server refused to access, please try again later",
    502: "[OpenAI] 错误的网关 |  Bad Gateway",
    503: "[OpenAI] 服务器繁忙，请稍后再试 | Server is busy, please try again later",
    504: "[OpenAI] 网关超时 | Gateway Time-out",
    500: "[OpenAI] 服务器繁忙，请稍后再试 | Internal Server Error",
}

FALLBACK_ERROR_MESSAGE = "Please check the back-end console"
