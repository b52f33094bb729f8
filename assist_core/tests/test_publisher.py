import threading
import time

import pytest

from assist_core.domain.exceptions import BackpressureError, ChannelClosedError, TransportError
from assist_core.streaming.publisher import FragmentPublisher
from assist_core.streaming.subscribers import CallbackSubscriber, MessageAssembler


class Recorder:
    def __init__(self, on_fragment=None):
        self.fragments = []
        self.completes = 0
        self.errors = []
        self._on_fragment = on_fragment

    def on_next(self, fragment):
        self.fragments.append(fragment)
        if self._on_fragment:
            self._on_fragment(fragment)

    def on_complete(self):
        self.completes += 1

    def on_error(self, error):
        self.errors.append(error)


def test_fragments_delivered_in_order_to_every_subscriber():
    pub = FragmentPublisher(buffer_size=8, offer_timeout=2.0)
    a, b = Recorder(), Recorder()
    pub.subscribe(a)
    pub.subscribe(b)
    expected = [f"f{i}" for i in range(100)]
    for fragment in expected:
        pub.publish(fragment)
    assert pub.complete()
    assert pub.join(5)
    assert a.fragments == expected
    assert b.fragments == expected
    assert a.completes == b.completes == 1
    assert a.errors == b.errors == []


def test_only_first_terminal_signal_takes_effect():
    pub = FragmentPublisher()
    rec = Recorder()
    pub.subscribe(rec)
    pub.publish("x")
    assert pub.complete_exceptionally(TransportError(code="NETWORK_ERROR", message="drop"))
    assert not pub.complete()
    assert not pub.complete_exceptionally(RuntimeError("second"))
    assert pub.join(5)
    assert rec.fragments == ["x"]
    assert rec.completes == 0
    assert len(rec.errors) == 1
    assert isinstance(rec.errors[0], TransportError)


def test_publish_after_close_raises():
    pub = FragmentPublisher()
    pub.complete()
    assert pub.is_closed
    with pytest.raises(ChannelClosedError):
        pub.publish("late")


def test_late_subscriber_gets_immediate_terminal_only():
    pub = FragmentPublisher()
    early = Recorder()
    pub.subscribe(early)
    pub.publish("a")
    pub.complete()
    late = Recorder()
    pub.subscribe(late)
    assert pub.join(5)
    assert early.fragments == ["a"]
    assert late.fragments == []
    assert late.completes == 1


def test_subscriber_registered_mid_stream_sees_later_fragments():
    pub = FragmentPublisher()
    first, second = Recorder(), Recorder()
    pub.subscribe(first)
    pub.publish("a")
    pub.subscribe(second)
    pub.publish("b")
    pub.complete()
    assert pub.join(5)
    assert first.fragments == ["a", "b"]
    assert second.fragments == ["b"]


def test_slow_subscriber_triggers_backpressure_error():
    gate = threading.Event()
    entered = threading.Event()

    def block(_):
        entered.set()
        gate.wait(5)

    pub = FragmentPublisher(buffer_size=2, offer_timeout=0.2)
    slow = Recorder(on_fragment=block)
    pub.subscribe(slow)
    pub.publish("a")
    assert entered.wait(5)
    pub.publish("b")
    with pytest.raises(BackpressureError) as ei:
        pub.publish("c")
    assert ei.value.code == "BACKPRESSURE"
    gate.set()
    pub.complete_exceptionally(ei.value)
    assert pub.join(5)
    assert slow.fragments == ["a", "b"]
    assert slow.errors == [ei.value]


def test_fragment_in_delivery_counts_against_buffer():
    gate = threading.Event()
    entered = threading.Event()

    def block(_):
        entered.set()
        gate.wait(5)

    pub = FragmentPublisher(buffer_size=1, offer_timeout=0.2)
    slow = Recorder(on_fragment=block)
    pub.subscribe(slow)
    pub.publish("a")
    assert entered.wait(5)
    with pytest.raises(BackpressureError):
        pub.publish("b")
    gate.set()
    pub.complete()
    assert pub.join(5)
    assert slow.fragments == ["a"]
    assert slow.completes == 1


def test_closing_channel_wakes_blocked_publish():
    gate = threading.Event()
    entered = threading.Event()

    def block(_):
        entered.set()
        gate.wait(10)

    pub = FragmentPublisher(buffer_size=1, offer_timeout=10.0)
    stuck = Recorder(on_fragment=block)
    pub.subscribe(stuck)
    pub.publish("a")
    assert entered.wait(5)

    publisher_returned = threading.Event()

    def produce():
        pub.publish("b")
        publisher_returned.set()

    producer = threading.Thread(target=produce, daemon=True)
    producer.start()
    time.sleep(0.2)
    assert not publisher_returned.is_set()

    started = time.monotonic()
    pub.complete_exceptionally(TransportError(code="NETWORK_ERROR", message="drop"))
    assert publisher_returned.wait(1.0)
    assert time.monotonic() - started < 1.0
    gate.set()
    assert pub.join(5)
    assert stuck.fragments == ["a"]
    assert len(stuck.errors) == 1


def test_slow_subscriber_does_not_delay_fast_one():
    gate = threading.Event()
    fast_done = threading.Event()
    pub = FragmentPublisher(buffer_size=4, offer_timeout=2.0)
    slow = Recorder(on_fragment=lambda _: gate.wait(5))
    fast = CallbackSubscriber(on_next=lambda f: None, on_complete=fast_done.set)
    pub.subscribe(slow)
    pub.subscribe(fast)
    for fragment in "abc":
        pub.publish(fragment)
    pub.complete()
    assert fast_done.wait(2)
    assert slow.completes == 0
    gate.set()
    assert pub.join(5)
    assert slow.fragments == ["a", "b", "c"]
    assert slow.completes == 1


def test_failing_subscriber_is_cancelled_with_its_exception():
    boom = ValueError("render failed")

    def explode(_):
        raise boom

    pub = FragmentPublisher()
    bad, good = Recorder(on_fragment=explode), Recorder()
    pub.subscribe(bad)
    pub.subscribe(good)
    pub.publish("a")
    # 等待坏订阅者被取消后继续发布
    deadline = time.monotonic() + 5
    while pub.subscriber_count != 1 and time.monotonic() < deadline:
        time.sleep(0.01)
    assert pub.subscriber_count == 1
    pub.publish("b")
    pub.complete()
    assert pub.join(5)
    assert bad.fragments == ["a"]
    assert bad.errors == [boom]
    assert bad.completes == 0
    assert good.fragments == ["a", "b"]
    assert good.completes == 1


def test_cancelled_subscription_receives_nothing_more():
    pub = FragmentPublisher()
    rec = Recorder()
    sub = pub.subscribe(rec)
    sub.cancel()
    assert sub.cancelled
    pub.publish("a")
    pub.complete()
    assert pub.join(5)
    assert rec.fragments == []
    assert rec.completes == 0


def test_message_assembler_builds_sealed_message():
    pub = FragmentPublisher()
    assembler = MessageAssembler()
    pub.subscribe(assembler)
    for fragment in ["Hel", "lo"]:
        pub.publish(fragment)
    pub.complete()
    message = assembler.wait(5)
    assert message.content == "Hello"
    assert message.role == "assistant"
    assert message.sealed


def test_message_assembler_raises_terminal_error():
    pub = FragmentPublisher()
    assembler = MessageAssembler()
    pub.subscribe(assembler)
    pub.publish("partial")
    err = TransportError(code="NETWORK_ERROR", message="reset")
    pub.complete_exceptionally(err)
    with pytest.raises(TransportError):
        assembler.wait(5)
    assert assembler.message.content == "partial"


def test_invalid_buffer_size():
    with pytest.raises(ValueError):
        FragmentPublisher(buffer_size=0)
