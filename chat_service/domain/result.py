"""统一返回信封。

所有对外操作都返回 Result，Web 层只需调用 to_dict() 序列化。
NotConfigured 用于"未配置 API Key"这类非错误但不可用的情况。
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ResultType(str, Enum):
    SUCCESS = "Success"
    FAIL = "Fail"
    NOT_CONFIGURED = "NotConfigured"


@dataclass
class Result:
    type: ResultType
    message: str = ""
    data: Any = None

    @classmethod
    def success(cls, data: Any = None, message: str = "") -> "Result":
        return cls(type=ResultType.SUCCESS, message=message, data=data)

    @classmethod
    def fail(cls, message: str, data: Any = None) -> "Result":
        return cls(type=ResultType.FAIL, message=message, data=data)

    @classmethod
    def not_configured(cls, message: str = "OPENAI_API_KEY not set") -> "Result":
        return cls(type=ResultType.NOT_CONFIGURED, message=message)

    @property
    def ok(self) -> bool:
        return self.type == ResultType.SUCCESS

    def to_dict(self) -> dict:
        return {"type": self.type.value, "message": self.message, "data": _to_wire(self.data)}


def _to_wire(value: Any) -> Optional[Any]:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if isinstance(value, dict):
        return {k: _to_wire(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_wire(v) for v in value]
    return value
