"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置。

环境变量名沿用 OpenAI 惯例（OPENAI_API_KEY、OPENAI_ACCESS_TOKEN、
SOCKS_PROXY_HOST 等），大小写不敏感。空字符串统一视为未配置（None），
上层只需要做真值判断。
"""

import os
import tempfile
import warnings
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_TIMEOUT_MS = 30 * 1000


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("CHAT_SERVICE_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class Settings(BaseSettings):
    """服务配置。"""

    # ---- 上游凭证：二选一 ----
    openai_api_key: Optional[str] = Field(default=None, description="官方 API Key，存在时使用 ChatGPTAPI")
    openai_access_token: Optional[str] = Field(
        default=None,
        description="网页版 accessToken，仅在未配置 API Key 时使用反向代理模式",
    )

    openai_api_base_url: Optional[str] = Field(default=None, description="自定义 API 根地址（不含 /v1）")
    openai_api_model: Optional[str] = Field(default=None, description="模型名称")
    api_reverse_proxy: Optional[str] = Field(default=None, description="反向代理地址")
    timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, description="单次对话超时时间（毫秒）")
    openai_api_disable_debug: bool = Field(default=False, description="关闭上游客户端调试日志")

    # ---- 代理 ----
    https_proxy: Optional[str] = Field(default=None)
    all_proxy: Optional[str] = Field(default=None)
    socks_proxy_host: Optional[str] = Field(default=None)
    socks_proxy_port: Optional[str] = Field(default=None)
    socks_proxy_username: Optional[str] = Field(default=None)
    socks_proxy_password: Optional[str] = Field(default=None)

    # ---- 存储与日志 ----
    message_store: Literal["memory", "json"] = Field(
        default="memory",
        description="ChatGPTAPI 历史消息存储方式",
    )
    storage_root: str = Field(default=".storage", description="存储根目录")
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    # ---- 微调 CLI ----
    openai_cli: str = Field(default="openai", description="openai 命令行工具路径")
    cli_timeout: float = Field(default=600.0, gt=0, description="CLI 执行超时时间（秒）")
    upload_root: str = Field(
        default_factory=tempfile.gettempdir,
        description="上传临时目录的根，预处理结束后只清理其下的子目录",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator(
        "openai_api_key",
        "openai_access_token",
        "openai_api_base_url",
        "openai_api_model",
        "api_reverse_proxy",
        "https_proxy",
        "all_proxy",
        "socks_proxy_host",
        "socks_proxy_port",
        "socks_proxy_username",
        "socks_proxy_password",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if v is None:
            return None
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return str(v)

    @field_validator("timeout_ms", mode="before")
    @classmethod
    def parse_timeout(cls, v: Any) -> int:
        # 非数字（含空串）回退为默认值
        try:
            return int(float(v))
        except (TypeError, ValueError, OverflowError):
            return DEFAULT_TIMEOUT_MS

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = Settings()
