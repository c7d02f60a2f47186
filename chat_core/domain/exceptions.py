"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 Pipeline 层或 UI 层做统一捕获与用户提示。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "STORE_WRITE_ERROR"）。
        message: 诊断用错误信息（不直接展示给终端用户）。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 trace_id、provider 等）。
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
    """生成端点返回非 2xx 或无法解析的响应时抛出。"""

    @property
    def status(self) -> int:
        return self.http_status


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


class CancelledError(BusinessError):
    """请求已被更新的一次发送取代，结果必须丢弃。"""


class PersistenceError(BusinessError):
    """本地存储读写失败。"""
