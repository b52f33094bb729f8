"""统一业务异常模型。

所有跨模块抛出的业务级错误都继承自 BusinessError，
流式客户端会把它们作为唯一的异常终止信号交给订阅者，
UI 层据此停止渲染并提示用户。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "MALFORMED_EVENT"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 run_id、response_text 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ValidationError(BusinessError):
    """参数、配置或调用方式校验失败。"""


class SerializationError(BusinessError):
    """请求体无法序列化，此时不会发出任何请求。"""


class RequestError(BusinessError):
    """服务端返回非 200 状态码，不会读取任何事件。"""

    @property
    def response_text(self) -> str:
        return self.extra.get("response_text", "")


class RateLimitError(RequestError):
    """Provider 限流（429），重试/退避由调用方决定。"""


class TransportError(BusinessError):
    """网络层错误：连接失败、超时或流中途断开。"""


class MalformedEventError(BusinessError):
    """SSE 数据行不是合法 JSON 或缺少 choices[0].delta。"""


class StreamCancelledError(BusinessError):
    """调用方主动取消了正在进行的流式请求。"""


class ChannelClosedError(BusinessError):
    """向已经关闭的发布通道继续发布片段。"""


class BackpressureError(BusinessError):
    """订阅者缓冲区持续占满，超过等待时间。"""
