"""对外 API 服务模块。

提供简化的函数接口供上层 Web 应用调用，所有函数都返回 Result 信封
（fetch_balance 除外，它只返回展示用字符串）。
"""

import calendar
import math
from datetime import date
from typing import Optional, Tuple

from chat_service.config.settings import settings
from chat_service.domain.exceptions import ApiError, BusinessError
from chat_service.domain.models import ApiModel, ChatConfig, ChatRequest
from chat_service.domain.result import Result
from chat_service.infrastructure.logging.logger import logger
from chat_service.providers import get_client
from chat_service.providers.base import ChatClient
from chat_service.providers.openai_rest import OpenAIRestClient, create_rest_client
from chat_service.providers.proxy import https_proxy_label, socks_proxy_label
from chat_service.providers.registry import ERROR_CODE_MESSAGES, FALLBACK_ERROR_MESSAGE


UNKNOWN_BALANCE = "-"


def chat_reply_process(request: ChatRequest, client: Optional[ChatClient] = None) -> Result:
    """转发一条消息给上游，增量通过 request.process 同步回调。

    只尝试一次，不重试。失败时按上游状态码返回固定的中英文提示，
    未知状态码返回原始错误信息。

    Args:
        request: 消息、上一轮上下文、system message、生成参数和增量回调。
        client: 指定客户端；默认使用进程内唯一实例。

    Returns:
        成功时 data 为完整的助手 ChatMessage，其 id / conversation_id
        即下一轮的上下文。
    """

    client = client or get_client()
    try:
        options = client.build_send_options(request.last_context, request.system_message, settings.timeout_ms)
        options.completion_params = dict(request.completion_params or {})
        options.on_progress = request.process
        response = client.send_message(request.message, options)
        return Result.success(response)
    except Exception as error:
        logger.error(f"Chat failed: {error}", extra={"extra": {
            "api_model": client.api_model.value,
            "error_type": type(error).__name__,
            "http_status": getattr(error, "http_status", None),
        }})
        return Result.fail(_error_message(error))


def _error_message(error: Exception) -> str:
    if isinstance(error, ApiError) and error.http_status in ERROR_CODE_MESSAGES:
        return ERROR_CODE_MESSAGES[error.http_status]
    return getattr(error, "message", None) or str(error) or FALLBACK_ERROR_MESSAGE


def current_model() -> ApiModel:
    return get_client().api_model


def format_date(today: Optional[date] = None) -> Tuple[str, str]:
    """返回当月第一天和最后一天（YYYY-MM-DD）。"""

    today = today or date.today()
    last_day = calendar.monthrange(today.year, today.month)[1]
    first = today.replace(day=1)
    last = today.replace(day=last_day)
    return first.isoformat(), last.isoformat()


def fetch_balance(rest_client: Optional[OpenAIRestClient] = None) -> str:
    """查询当月用量，格式化为 "$x.xx"；未配置或任何失败都返回 "-"。"""

    if not settings.openai_api_key:
        return UNKNOWN_BALANCE

    start_date, end_date = format_date()
    try:
        client = rest_client or create_rest_client(settings)
        usage_data = client.get_json(
            "/v1/dashboard/billing/usage",
            params={"start_date": start_date, "end_date": end_date},
        )
        total_usage = usage_data.get("total_usage")
        if total_usage is None:
            return UNKNOWN_BALANCE
        # total_usage 单位为美分
        usage = math.floor(float(total_usage) + 0.5) / 100
    except (BusinessError, ValueError, TypeError, AttributeError, OverflowError) as e:
        logger.warning(f"Fetch balance failed: {e}")
        return UNKNOWN_BALANCE
    if not usage:
        return UNKNOWN_BALANCE
    return f"${_format_amount(usage)}"


def _format_amount(value: float) -> str:
    return f"{value:.2f}".rstrip("0").rstrip(".")


def chat_config() -> Result:
    """当前集成模式、代理、超时与余额的快照。"""

    balance = fetch_balance()
    config = ChatConfig(
        api_model=current_model(),
        reverse_proxy=settings.api_reverse_proxy or "-",
        timeout_ms=settings.timeout_ms,
        socks_proxy=socks_proxy_label(settings),
        https_proxy=https_proxy_label(settings),
        balance=balance,
    )
    return Result.success(config)
