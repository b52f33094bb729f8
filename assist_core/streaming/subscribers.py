"""常用订阅者实现。"""

import threading
from typing import Callable, Optional

from assist_core.domain.models import ChatMessage, Fragment


class CallbackSubscriber:
    """把普通函数适配为 Subscriber，便于 UI 层直接挂回调。"""

    def __init__(
        self,
        on_next: Callable[[Fragment], None],
        on_complete: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
    ):
        self._on_next = on_next
        self._on_complete = on_complete
        self._on_error = on_error

    def on_next(self, fragment: Fragment) -> None:
        self._on_next(fragment)

    def on_complete(self) -> None:
        if self._on_complete:
            self._on_complete()

    def on_error(self, error: BaseException) -> None:
        if self._on_error:
            self._on_error(error)


class MessageAssembler:
    """把流式片段拼装成一条 assistant 消息。

    投递线程是 message 内容的唯一写入方；其他协作方只通过
    message.content 读取。收到终止信号后消息被封存。
    """

    def __init__(self, message: Optional[ChatMessage] = None):
        self.message = message or ChatMessage.create(role="assistant")
        self.error: Optional[BaseException] = None
        self._done = threading.Event()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def on_next(self, fragment: Fragment) -> None:
        self.message.append(fragment)

    def on_complete(self) -> None:
        self.message.seal()
        self._done.set()

    def on_error(self, error: BaseException) -> None:
        self.error = error
        self.message.seal()
        self._done.set()

    def wait(self, timeout: Optional[float] = None) -> ChatMessage:
        """等待终止信号，正常结束返回消息，异常结束抛出对应错误。"""

        if not self._done.wait(timeout):
            raise TimeoutError("Timed out waiting for the response stream to finish")
        if self.error is not None:
            raise self.error
        return self.message
