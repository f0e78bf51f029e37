"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 API 层做统一捕获与用户提示。

两大分支：
- ProviderError：后端生成调用的瞬时故障，可以重试。
- ValidationError：调用方或配置错误，永不重试，立即上抛。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "UNKNOWN_PROVIDER"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 provider、connection_id 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ProviderError(BusinessError):
    """Provider 调用失败（网络、非 2xx、响应格式错误、超时）。"""

    def __init__(self, code: str, message: str, http_status: int = 502, **extra):
        super().__init__(code, message, http_status, **extra)


class NetworkError(ProviderError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(ProviderError):
    """第三方 API 返回非 2xx/429 错误或无法解析的响应时抛出。"""


class RateLimitError(ProviderError):
    """Provider 限流错误，由重试策略负责退避。"""


class StreamInitiationError(ProviderError):
    """流式生成在产出第一个片段之前失败，且重试次数已耗尽。"""


class StreamCancelledError(ProviderError):
    """消费端取消了流（超时或断开），流以该错误终止。"""


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


class UnknownProviderError(ValidationError):
    """请求的 provider 标识没有注册对应的适配器。"""


class ControlMessageError(ValidationError):
    """WebSocket 控制帧无法解析。"""


class InvalidIdentifierError(ValidationError):
    """外部传入的数字 ID 格式非法。"""


class NotFoundError(BusinessError):
    """存储中找不到请求的会话或角色。"""

    def __init__(self, code: str, message: str, http_status: int = 404, **extra):
        super().__init__(code, message, http_status, **extra)


class SessionNotFoundError(BusinessError):
    """连接已关闭或从未建立；会话管理器内部将其视为空操作。"""
