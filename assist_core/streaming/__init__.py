"""流式增量处理：SSE 解码、片段广播通道与常用订阅者。"""

from assist_core.streaming.publisher import FragmentPublisher, Subscriber, Subscription
from assist_core.streaming.sse import StreamEvent, decode_line, iter_events
from assist_core.streaming.subscribers import CallbackSubscriber, MessageAssembler

__all__ = [
    "CallbackSubscriber",
    "FragmentPublisher",
    "MessageAssembler",
    "StreamEvent",
    "Subscriber",
    "Subscription",
    "decode_line",
    "iter_events",
]
