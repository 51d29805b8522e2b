"""统一业务异常模型。

SDK 内所有对外暴露的错误都继承自 BusinessError，
调用方可以按基类统一捕获，也可以按具体子类区分处理：

- ConfigError: 请求构造阶段的错误（缺少 token、端点名非法、请求体无法序列化），
  一定发生在任何网络 I/O 之前。
- TransportError: 连接级错误（DNS、连接被拒、读超时、流中断）。
- HttpStatusError: 服务端返回非 2xx。
- DecodeError: 响应体或事件负载不符合 ChatResponse / ChatMessage 的结构。
"""

from typing import Optional


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "MISSING_TOKEN"）。
        message: 用户可读错误信息。
        http_status: 与 HTTP 响应相关时的状态码，否则为 None。
        extra: 其他补充字段（例如 endpoint、chat_id 等）。
    """

    def __init__(self, code: str, message: str, http_status: Optional[int] = None, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ConfigError(BusinessError):
    """请求构造或配置错误，在发起请求前抛出。"""


class TransportError(BusinessError):
    """网络层错误，例如连接失败、超时、流被中断等。"""


class HttpStatusError(BusinessError):
    """服务端返回非 2xx 时抛出，message 中总是包含数字状态码。"""

    def __init__(self, code: str, message: str, http_status: Optional[int] = None, body: str = "", **extra):
        super().__init__(code, message, http_status=http_status, **extra)
        self.body = body


class RateLimitError(HttpStatusError):
    """429 限流，重试/退避策略由调用方负责。"""


class DecodeError(BusinessError):
    """负载无法解析为预期的消息结构。"""
