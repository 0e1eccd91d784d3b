"""OpenAI REST 辅助客户端。

余额、模型列表、微调任务和文件上传都是简单的 Bearer 认证 JSON 接口，
统一走这里：

- URL: {OPENAI_API_BASE_URL 或 https://api.openai.com}{path}
- 认证: Authorization: Bearer <OPENAI_API_KEY>
"""

from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from chat_service.config.settings import settings
from chat_service.domain.exceptions import NetworkError, ValidationError
from chat_service.providers.chatgpt_api import api_error
from chat_service.providers.proxy import TransportFactory, setup_proxy


class OpenAIRestClient:
    def __init__(self, cfg=None):
        self._settings = cfg or settings
        self.transport_factory: Optional[TransportFactory] = None

    @property
    def configured(self) -> bool:
        return bool(self._settings.openai_api_key)

    @property
    def base_url(self) -> str:
        return (self._settings.openai_api_base_url or "https://api.openai.com").rstrip("/")

    def request(self, method: str, path: str, **kwargs) -> Any:
        """发送请求并返回解析后的 JSON；非 2xx 抛 ApiError。"""

        if not self.configured:
            raise ValidationError(code="MISSING_API_KEY", message="OPENAI_API_KEY not set")
        factory = self.transport_factory
        headers = {"Authorization": f"Bearer {self._settings.openai_api_key}"}
        try:
            with httpx.Client(
                timeout=self._settings.timeout_ms / 1000,
                transport=factory() if factory else None,
                trust_env=False,
            ) as client:
                resp = client.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if resp.status_code >= 400:
            raise api_error(resp.status_code, resp.text)
        return resp.json()

    def get_json(self, path: str, params: Optional[Dict[str, str]] = None) -> Any:
        return self.request("GET", path, params=params)

    def post_json(self, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        return self.request("POST", path, json=payload)

    def delete_json(self, path: str) -> Any:
        return self.request("DELETE", path)

    def upload_file(self, path: str | Path, purpose: str = "fine-tune") -> Any:
        """multipart 上传到 /v1/files。"""

        file_path = Path(path)
        with file_path.open("rb") as fh:
            return self.request(
                "POST",
                "/v1/files",
                files={"file": (file_path.name, fh, "text/plain")},
                data={"purpose": purpose},
            )


def create_rest_client(cfg=None) -> OpenAIRestClient:
    """创建 REST 客户端并按配置安装代理。"""

    cfg = cfg or settings
    client = OpenAIRestClient(cfg)
    setup_proxy(client, cfg)
    return client
