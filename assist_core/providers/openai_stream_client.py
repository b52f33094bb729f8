"""OpenAI chat/completions 流式客户端。

本模块负责：

1. 从 Conversation + 配置快照构造请求体（request_builder）。
2. 用 httpx 发起 POST，并以流的方式逐行读取响应。
3. 把每条 SSE 数据行里的 delta.content 作为片段发布到 FragmentPublisher。
4. 流结束或出错时关闭通道：正常结束 complete()，否则 complete_exceptionally(err)。

订阅者只通过 Subscriber 接口（on_next / on_complete / on_error）观察结果，
不接触任何传输细节。一个客户端实例只执行一次 run。
"""

import logging
import threading
from typing import Any, Dict, Literal, Optional, Tuple
from uuid import uuid4

import httpx

from assist_core.config.settings import settings
from assist_core.domain.conversation import ConversationSource
from assist_core.domain.exceptions import (
    BusinessError,
    RateLimitError,
    RequestError,
    StreamCancelledError,
    TransportError,
    ValidationError,
)
from assist_core.domain.models import RequestConfig
from assist_core.infrastructure.logging.logger import logger
from assist_core.providers.registry import request_config_from_settings
from assist_core.providers.request_builder import build_request_body
from assist_core.streaming.publisher import FragmentPublisher, Subscriber, Subscription
from assist_core.streaming.sse import iter_events


RunState = Literal["idle", "sending", "streaming", "completed", "failed"]


class OpenAIStreamClient:
    """单次流式对话调用。

    - subscribe: 注册订阅者（运行前、运行中均可，结束后注册会立即收到终止信号）。
    - run: 在当前线程同步执行请求，失败时抛出对应的 BusinessError。
    - start: 在独立工作线程中执行 run。
    - cancel: 中止读取、释放连接，并向所有订阅者投递一次 StreamCancelledError。
    """

    name = "openai"

    def __init__(
        self,
        cfg=settings,
        *,
        publisher: Optional[FragmentPublisher] = None,
        log: Optional[logging.Logger] = None,
        transport: Optional[httpx.BaseTransport] = None,
        system_prompt: Optional[str] = None,
    ):
        # cfg 只在 run 开始时读取一次，生成 RequestConfig 快照
        self._settings = cfg
        self._run_id = f"run-{uuid4().hex}"
        self._publisher = publisher or FragmentPublisher(
            buffer_size=getattr(cfg, "stream_buffer_size", 256),
            offer_timeout=getattr(cfg, "publish_timeout", 30.0),
            name=self._run_id,
        )
        self._logger = log or logger
        self._transport = transport
        self._system_prompt = system_prompt

        self._lock = threading.Lock()
        self._used = False
        self._cancel_event = threading.Event()
        self._cancel_error: Optional[StreamCancelledError] = None
        self._response: Optional[httpx.Response] = None
        self._worker: Optional[threading.Thread] = None
        self.state: RunState = "idle"
        self.error: Optional[BaseException] = None

    @property
    def run_id(self) -> str:
        return self._run_id

    @property
    def publisher(self) -> FragmentPublisher:
        return self._publisher

    def subscribe(self, subscriber: Subscriber) -> Subscription:
        return self._publisher.subscribe(subscriber)

    def run(self, conversation: ConversationSource, config: Optional[RequestConfig] = None) -> None:
        """同步执行一次流式请求。

        Args:
            conversation: 有序历史消息。
            config: 显式的配置快照；为空时从 cfg 读取一次。

        Raises:
            ValidationError: 缺少 API key，或该实例已经执行过 run。
            SerializationError / RequestError / TransportError /
            MalformedEventError / StreamCancelledError: 见 domain.exceptions。
        """

        self._claim()
        self._execute(conversation, config)

    def start(self, conversation: ConversationSource, config: Optional[RequestConfig] = None) -> threading.Thread:
        """在专用工作线程中执行请求，立即返回该线程。"""

        self._claim()
        worker = threading.Thread(
            target=self._run_worker,
            args=(conversation, config),
            name=f"openai-stream-{self._run_id}",
            daemon=True,
        )
        self._worker = worker
        worker.start()
        return worker

    def join(self, timeout: Optional[float] = None) -> bool:
        """等待工作线程及所有投递线程结束。"""

        if self._worker is not None:
            self._worker.join(timeout)
            if self._worker.is_alive():
                return False
        return self._publisher.join(timeout)

    def cancel(self, reason: str = "Stream cancelled by caller") -> None:
        if self._cancel_event.is_set():
            return
        self._cancel_error = StreamCancelledError(code="CANCELLED", message=reason, run_id=self._run_id)
        self._cancel_event.set()
        if self._publisher.complete_exceptionally(self._cancel_error):
            self._log(logging.INFO, "Stream cancelled", {"run_id": self._run_id}, reason=reason)
        resp = self._response
        if resp is not None:
            resp.close()

    # ---- 内部实现 ----

    def _claim(self) -> None:
        with self._lock:
            if self._used:
                raise ValidationError(
                    code="CLIENT_ALREADY_USED",
                    message="OpenAIStreamClient runs a single request; create a new client per request",
                )
            self._used = True

    def _run_worker(self, conversation: ConversationSource, config: Optional[RequestConfig]) -> None:
        try:
            self._execute(conversation, config)
        except BusinessError:
            # 错误已记录在 self.error 并作为终止信号投递给订阅者
            return

    def _execute(self, conversation: ConversationSource, config: Optional[RequestConfig]) -> None:
        cfg = config or request_config_from_settings(self._settings)
        log_ctx: Dict[str, Any] = {"run_id": self._run_id, "provider": self.name, "model": cfg.model}
        self.state = "sending"
        try:
            self._raise_if_cancelled()
            if not cfg.api_key:
                raise ValidationError(code="MISSING_API_KEY", message="OPENAI_API_KEY not set")
            body = build_request_body(
                conversation,
                cfg,
                system_prompt=self._system_prompt,
                include_extensions=getattr(self._settings, "include_message_extensions", False),
                locale=getattr(self._settings, "prompt_locale", "en"),
            )
            messages = conversation.messages()
            for message in messages:
                message.seal()
            self._log(
                logging.INFO,
                "Sending streaming request",
                log_ctx,
                api_url=cfg.api_url,
                message_count=len(messages) + 1,
            )
            fragments, finish_reason, terminated = self._stream(body, cfg, log_ctx)
        except BusinessError as exc:
            err = exc
            if self._cancel_event.is_set() and not isinstance(exc, StreamCancelledError):
                err = self._cancel_error
            self._fail(err, log_ctx)
            if err is exc:
                raise
            raise err from exc
        except Exception as exc:
            self._fail(exc, log_ctx)
            raise

        if not terminated:
            self._log(logging.WARNING, "Stream ended without termination token", log_ctx)
        self.state = "completed"
        self._publisher.complete()
        self._log(
            logging.INFO,
            "Streaming request completed",
            log_ctx,
            fragments=fragments,
            finish_reason=finish_reason,
        )

    def _stream(self, body: bytes, cfg: RequestConfig, log_ctx: Dict[str, Any]) -> Tuple[int, Optional[str], bool]:
        timeout = getattr(self._settings, "http_timeout", 30.0)
        try:
            with httpx.Client(timeout=timeout, trust_env=False, transport=self._transport) as client:
                with client.stream("POST", cfg.api_url, content=body, headers=self._headers(cfg)) as resp:
                    self._response = resp
                    try:
                        self._raise_if_cancelled()
                        if resp.status_code != 200:
                            self._raise_for_status(resp, log_ctx)
                        self.state = "streaming"
                        return self._consume(resp)
                    finally:
                        self._response = None
        except (httpx.RequestError, httpx.StreamError) as e:
            # 网络错误：DNS 失败、连接超时、流中途断开等
            raise TransportError(code="NETWORK_ERROR", message=str(e) or type(e).__name__) from e

    def _consume(self, resp: httpx.Response) -> Tuple[int, Optional[str], bool]:
        """单次前向遍历响应行，不缓存整个响应体。"""

        fragments = 0
        finish_reason: Optional[str] = None
        for event in iter_events(resp.iter_lines()):
            self._raise_if_cancelled()
            if event.done:
                # [DONE] 之后的字节（例如 usage 统计）直接丢弃
                return fragments, finish_reason, True
            if event.finish_reason:
                finish_reason = event.finish_reason
            if event.text is not None:
                self._publisher.publish(event.text)
                fragments += 1
        self._raise_if_cancelled()
        return fragments, finish_reason, False

    def _raise_for_status(self, resp: httpx.Response, log_ctx: Dict[str, Any]) -> None:
        resp.read()
        text = resp.text
        status = resp.status_code
        if status == 429:
            # 限流错误交给上层做重试/退避
            raise RateLimitError(
                code="RATE_LIMIT",
                message="OpenAI rate limit",
                http_status=status,
                response_text=text,
                run_id=log_ctx["run_id"],
            )
        raise RequestError(
            code="API_ERROR",
            message=f"Request failed with status {status}",
            http_status=status,
            response_text=text,
            run_id=log_ctx["run_id"],
        )

    def _raise_if_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise self._cancel_error

    def _fail(self, err: BaseException, log_ctx: Dict[str, Any]) -> None:
        self.state = "failed"
        self.error = err
        fields: Dict[str, Any] = {"error": str(err), "error_type": type(err).__name__}
        if isinstance(err, BusinessError):
            fields["code"] = err.code
            if isinstance(err, RequestError):
                fields["http_status"] = err.http_status
        level = logging.INFO if isinstance(err, StreamCancelledError) else logging.ERROR
        self._log(level, "Streaming request failed", log_ctx, **fields)
        self._publisher.complete_exceptionally(err)

    @staticmethod
    def _headers(cfg: RequestConfig) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {cfg.api_key}",
            "Accept": "text/event-stream",
            "Content-Type": "application/json",
        }

    def _log(self, level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        self._logger.log(level, message, extra={"extra": payload})
