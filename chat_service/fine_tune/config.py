"""Fine-tune request models."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from chat_service.domain.exceptions import ValidationError


# 拼进 URL 路径的 ID 只允许这些字符
_RESOURCE_ID = re.compile(r"^[A-Za-z0-9_.:\-]+$")


def validate_resource_id(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not _RESOURCE_ID.match(value):
        raise ValidationError(code="INVALID_ID", message=f"invalid {field_name}: {value!r}")
    return value


def _cli_string(body: Mapping[str, Any], key: str, *, required: bool) -> Optional[str]:
    value = body.get(key)
    if value is None or value == "":
        if required:
            raise ValidationError(code="MISSING_FIELD", message=f"{key} is required")
        return None
    if not isinstance(value, str):
        raise ValidationError(code="INVALID_FIELD", message=f"{key} must be a string")
    value = value.strip()
    # 以 - 开头会被 CLI 当成选项
    if not value or value.startswith("-"):
        raise ValidationError(code="INVALID_FIELD", message=f"invalid {key}: {value!r}")
    return value


def _positive(body: Mapping[str, Any], key: str, cast) -> Optional[int | float]:
    value = body.get(key)
    # 假值（0、空串）视为未设置
    if not value:
        return None
    if isinstance(value, bool):
        raise ValidationError(code="INVALID_FIELD", message=f"{key} must be a number")
    try:
        number = cast(value)
    except (TypeError, ValueError):
        raise ValidationError(code="INVALID_FIELD", message=f"{key} must be a number")
    if number <= 0:
        raise ValidationError(code="INVALID_FIELD", message=f"{key} must be positive")
    return number


def _flag(body: Mapping[str, Any], key: str) -> bool:
    value = body.get(key)
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes"}
    return bool(value)


@dataclass
class FineTuneCreateRequest:
    """fine_tunes.create 的参数。

    Attributes:
        training_file: 已上传的训练文件 ID。
        model: 基础模型名。
        suffix: 微调后模型名后缀（可选）。
        n_epochs / batch_size / learning_rate_multiplier: 高级参数，未设置则不传。
        compute_classification_metrics: 为真时追加不带值的开关。
    """

    training_file: str
    model: str
    suffix: Optional[str] = None
    n_epochs: Optional[int] = None
    batch_size: Optional[int] = None
    learning_rate_multiplier: Optional[float] = None
    compute_classification_metrics: bool = False

    @classmethod
    def from_body(cls, body: Mapping[str, Any]) -> "FineTuneCreateRequest":
        """从请求体构造，只读取白名单字段。"""

        return cls(
            training_file=_cli_string(body, "training_file", required=True),
            model=_cli_string(body, "model", required=True),
            suffix=_cli_string(body, "suffix", required=False),
            n_epochs=_positive(body, "n_epochs", int),
            batch_size=_positive(body, "batch_size", int),
            learning_rate_multiplier=_positive(body, "learning_rate_multiplier", float),
            compute_classification_metrics=_flag(body, "compute_classification_metrics"),
        )


@dataclass
class UploadedFile:
    """上传中间件落盘的原始文件，所在目录归本次请求独占。"""

    path: str

    def __post_init__(self) -> None:
        self.path = str(Path(self.path).expanduser().resolve())

    @property
    def folder(self) -> Path:
        return Path(self.path).parent

    @property
    def filename(self) -> str:
        return Path(self.path).name

    def exists(self) -> bool:
        return Path(self.path).is_file()
