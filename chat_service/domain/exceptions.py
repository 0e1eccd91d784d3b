"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 API 层统一捕获并转换为 Result 信封。
"""

from typing import Optional


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "API_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 provider、url 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(BusinessError):
    """上游 API 返回非 2xx 时抛出，http_status 即上游状态码。"""


class RateLimitError(ApiError):
    """上游限流（429）。本服务不做自动重试，由调用方决定。"""


class ValidationError(BusinessError):
    """参数校验失败。"""


class ConfigurationError(BusinessError):
    """启动配置错误（例如两种凭证都缺失），属于致命错误。"""

    def __init__(self, message: str, code: str = "MISSING_CREDENTIALS", **extra):
        super().__init__(code=code, message=message, http_status=500, **extra)


class ProcessError(BusinessError):
    """外部 CLI 执行失败：非零退出、超时或找不到可执行文件。"""

    def __init__(
        self,
        message: str,
        code: str = "CLI_FAILED",
        returncode: Optional[int] = None,
        stderr: str = "",
        **extra,
    ):
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(code=code, message=message, http_status=500, **extra)
