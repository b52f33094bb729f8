"""片段发布/订阅通道。

单生产者、多订阅者的广播通道：

- 每个订阅者拥有独立的 FIFO 队列和投递线程，慢订阅者不会拖住
  读取网络的工作线程，也不会影响其他订阅者。
- 每个订阅者最多持有 buffer_size 个片段（包括正在 on_next 中投递的那个）；
  缓冲区满时 publish 阻塞等待，超过 offer_timeout 秒仍无空位则抛出
  BackpressureError。片段不会被丢弃或合并。
- 终止信号（complete / complete_exceptionally）不受容量限制，
  总是在该订阅者已排队的片段之后投递，且整个通道只生效一次。
  通道关闭会立即唤醒阻塞在满缓冲区上的 publish。
- 通道关闭后再订阅，会立即收到终止信号且没有任何片段。
"""

import logging
import queue
import threading
from typing import List, Optional, Protocol, Tuple

from assist_core.domain.exceptions import BackpressureError, ChannelClosedError
from assist_core.domain.models import Fragment
from assist_core.infrastructure.logging.logger import logger


class Subscriber(Protocol):
    """下游消费者（例如 UI 渲染器）实现的接口。"""

    def on_next(self, fragment: Fragment) -> None:
        ...

    def on_complete(self) -> None:
        ...

    def on_error(self, error: BaseException) -> None:
        ...


_NEXT = "next"
_COMPLETE = "complete"
_ERROR = "error"
_CANCEL = "cancel"


class Subscription:
    """某个订阅者在通道上的投递状态。"""

    def __init__(self, publisher: "FragmentPublisher", subscriber: Subscriber, capacity: int, name: str):
        self._publisher = publisher
        self._subscriber = subscriber
        self._queue: "queue.SimpleQueue[Tuple[str, object]]" = queue.SimpleQueue()
        self._slots = threading.Semaphore(capacity)
        self._cancelled = threading.Event()
        self._closed = threading.Event()
        self._thread = threading.Thread(target=self._drain, name=name, daemon=True)

    @property
    def subscriber(self) -> Subscriber:
        return self._subscriber

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """取消订阅，之后不再收到任何信号。"""

        if self._cancelled.is_set():
            return
        self._cancelled.set()
        self._publisher._detach(self)
        self._queue.put((_CANCEL, None))
        # 唤醒可能正阻塞在该订阅者上的生产者
        self._slots.release()

    def join(self, timeout: Optional[float] = None) -> bool:
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _start(self) -> None:
        self._thread.start()

    def _offer(self, fragment: Fragment, timeout: float) -> bool:
        if self._cancelled.is_set() or self._closed.is_set():
            return True
        if not self._slots.acquire(timeout=timeout):
            return False
        # 等待期间被取消或通道已关闭：片段不再入队
        if self._cancelled.is_set() or self._closed.is_set():
            self._slots.release()
            return True
        self._queue.put((_NEXT, fragment))
        return True

    def _push_terminal(self, kind: str, error: Optional[BaseException]) -> None:
        self._closed.set()
        self._queue.put((kind, error))
        # 唤醒阻塞在满缓冲区上的生产者
        self._slots.release()

    def _drain(self) -> None:
        while True:
            kind, value = self._queue.get()
            if kind == _CANCEL or self._cancelled.is_set():
                return
            if kind == _NEXT:
                try:
                    self._subscriber.on_next(value)
                except Exception as exc:
                    self._fail_subscriber(exc)
                    return
                # 投递完成后才归还名额，正在投递的片段也计入容量
                self._slots.release()
                continue
            try:
                if kind == _COMPLETE:
                    self._subscriber.on_complete()
                else:
                    self._subscriber.on_error(value)
            except Exception:
                logger.exception("Subscriber raised from terminal callback", extra={"extra": {"subscription": self._thread.name}})
            return

    def _fail_subscriber(self, exc: Exception) -> None:
        logger.log(
            logging.ERROR,
            "Subscriber raised from on_next; subscription cancelled",
            extra={"extra": {"subscription": self._thread.name, "error": repr(exc)}},
        )
        self._cancelled.set()
        self._publisher._detach(self)
        self._slots.release()
        try:
            self._subscriber.on_error(exc)
        except Exception:
            logger.exception("Subscriber raised from on_error", extra={"extra": {"subscription": self._thread.name}})


class FragmentPublisher:
    """有界的片段广播通道。"""

    def __init__(self, buffer_size: int = 256, offer_timeout: float = 30.0, name: str = "fragments"):
        if buffer_size < 1:
            raise ValueError("buffer_size must be >= 1")
        self._buffer_size = buffer_size
        self._offer_timeout = offer_timeout
        self._name = name
        self._lock = threading.Lock()
        self._active: List[Subscription] = []
        self._all: List[Subscription] = []
        self._terminal: Optional[Tuple[str, Optional[BaseException]]] = None
        self._counter = 0

    @property
    def is_closed(self) -> bool:
        return self._terminal is not None

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._active)

    def subscribe(self, subscriber: Subscriber) -> Subscription:
        with self._lock:
            self._counter += 1
            sub = Subscription(self, subscriber, self._buffer_size, f"{self._name}-sub-{self._counter}")
            self._all.append(sub)
            if self._terminal is not None:
                sub._push_terminal(*self._terminal)
            else:
                self._active.append(sub)
            sub._start()
        return sub

    def publish(self, fragment: Fragment) -> None:
        """把片段按顺序放入每个订阅者的队列。

        Raises:
            ChannelClosedError: 通道已经关闭。
            BackpressureError: 某个订阅者的缓冲区在 offer_timeout 内一直是满的。
        """

        with self._lock:
            if self._terminal is not None:
                raise ChannelClosedError(code="CHANNEL_CLOSED", message="Cannot publish to a closed channel")
            targets = list(self._active)
        for sub in targets:
            if not sub._offer(fragment, self._offer_timeout):
                raise BackpressureError(
                    code="BACKPRESSURE",
                    message=f"Subscriber buffer full for {self._offer_timeout}s",
                    subscription=sub._thread.name,
                    buffer_size=self._buffer_size,
                )

    def complete(self) -> bool:
        """正常关闭通道；只有第一次终止调用生效，返回是否生效。"""

        return self._terminate(_COMPLETE, None)

    def complete_exceptionally(self, error: BaseException) -> bool:
        """异常关闭通道，所有订阅者在已排队片段之后收到 on_error(error)。"""

        return self._terminate(_ERROR, error)

    def join(self, timeout: Optional[float] = None) -> bool:
        """等待所有投递线程结束（用于测试与同步调用）。"""

        with self._lock:
            subs = list(self._all)
        return all(sub.join(timeout) for sub in subs)

    def _terminate(self, kind: str, error: Optional[BaseException]) -> bool:
        with self._lock:
            if self._terminal is not None:
                return False
            self._terminal = (kind, error)
            targets, self._active = self._active, []
        for sub in targets:
            sub._push_terminal(kind, error)
        return True

    def _detach(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._active:
                self._active.remove(sub)
