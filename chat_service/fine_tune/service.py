"""微调管理接口：模型/任务列表、任务详情、取消、删除、创建。

REST 操作均需要 OPENAI_API_KEY，未配置时返回 NotConfigured；
请求失败返回 Fail 并附带空数据。创建任务走 openai CLI。
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from chat_service.config.settings import settings
from chat_service.domain.result import Result
from chat_service.infrastructure.logging.logger import logger
from chat_service.providers.openai_rest import OpenAIRestClient, create_rest_client

from .cli import build_create_args, run_cli
from .config import FineTuneCreateRequest, validate_resource_id


FETCH_FAILED_MESSAGE = "获取失败"
CANCEL_FAILED_MESSAGE = "取消失败"
DELETE_FAILED_MESSAGE = "删除失败"
CREATED_MESSAGE = "创建成功"


def _rest(rest_client: Optional[OpenAIRestClient]) -> OpenAIRestClient:
    return rest_client or create_rest_client(settings)


def _fetch_data(path: str, rest_client: Optional[OpenAIRestClient]) -> Result:
    client = _rest(rest_client)
    if not client.configured:
        return Result.not_configured()
    try:
        body = client.get_json(path)
        return Result.success((body or {}).get("data") or [])
    except Exception as e:
        logger.warning(f"Fetch {path} failed: {e}")
        return Result.fail(FETCH_FAILED_MESSAGE, data=[])


def get_models(rest_client: Optional[OpenAIRestClient] = None) -> Result:
    return _fetch_data("/v1/models", rest_client)


def get_list(rest_client: Optional[OpenAIRestClient] = None) -> Result:
    """列出所有微调任务。"""
    return _fetch_data("/v1/fine-tunes", rest_client)


def get_model_detail(fine_tune_id: str, rest_client: Optional[OpenAIRestClient] = None) -> Result:
    """微调任务的事件列表。"""

    client = _rest(rest_client)
    if not client.configured:
        return Result.not_configured()
    try:
        validate_resource_id(fine_tune_id, "fine_tune_id")
    except Exception as e:
        logger.warning(f"Fetch fine-tune events rejected: {e}")
        return Result.fail(FETCH_FAILED_MESSAGE, data=[])
    return _fetch_data(f"/v1/fine-tunes/{fine_tune_id}/events", client)


def cancel_model(fine_tune_id: str, rest_client: Optional[OpenAIRestClient] = None) -> Result:
    client = _rest(rest_client)
    if not client.configured:
        return Result.not_configured()
    try:
        validate_resource_id(fine_tune_id, "fine_tune_id")
        body = client.post_json(f"/v1/fine-tunes/{fine_tune_id}/cancel")
        return Result.success(body or {})
    except Exception as e:
        logger.warning(f"Cancel fine-tune failed: {e}", extra={"extra": {"fine_tune_id": fine_tune_id}})
        return Result.fail(CANCEL_FAILED_MESSAGE, data={})


def delete_model(fine_tuned_model: str, rest_client: Optional[OpenAIRestClient] = None) -> Result:
    client = _rest(rest_client)
    if not client.configured:
        return Result.not_configured()
    try:
        validate_resource_id(fine_tuned_model, "fine_tuned_model")
        body = client.delete_json(f"/v1/models/{fine_tuned_model}")
        return Result.success(body or {})
    except Exception as e:
        logger.warning(f"Delete model failed: {e}", extra={"extra": {"model": fine_tuned_model}})
        return Result.fail(DELETE_FAILED_MESSAGE, data={})


def create_model(body: Mapping[str, Any], cfg=None) -> Result:
    """通过 CLI 创建微调任务。

    参数非法抛 ValidationError，CLI 失败抛 ProcessError。
    """

    cfg = cfg or settings
    request = FineTuneCreateRequest.from_body(body)
    run_cli(build_create_args(request, cfg.openai_cli), cfg=cfg)
    logger.info("fine_tune.created", extra={"extra": {"model": request.model, "suffix": request.suffix}})
    return Result.success({}, message=CREATED_MESSAGE)
