"""对外 API 服务模块。

提供简化的函数接口供 IDE 侧调用：

- stream_chat: 启动一次后台流式请求，片段实时推给订阅者。
- complete_chat: 阻塞直到回答结束，返回拼装好的 assistant 消息。
"""

from typing import Optional

from assist_core.domain.conversation import ConversationSource
from assist_core.domain.models import ChatMessage, RequestConfig
from assist_core.infrastructure.logging.logger import logger
from assist_core.providers import OpenAIStreamClient, create_stream_client
from assist_core.streaming.publisher import Subscriber
from assist_core.streaming.subscribers import MessageAssembler


def stream_chat(
    conversation: ConversationSource,
    subscriber: Subscriber,
    cfg=None,
    config: Optional[RequestConfig] = None,
) -> OpenAIStreamClient:
    """在后台线程发起流式对话。

    Args:
        conversation: 要发送的会话
        subscriber: 接收片段与终止信号的订阅者
        cfg: 配置对象（可选，默认全局 settings）
        config: 显式的请求配置快照（可选）

    Returns:
        已启动的客户端，可用于 cancel() 或 join()
    """
    client = create_stream_client(cfg)
    client.subscribe(subscriber)
    client.start(conversation, config)
    return client


def complete_chat(
    conversation: ConversationSource,
    cfg=None,
    config: Optional[RequestConfig] = None,
    timeout: Optional[float] = None,
) -> ChatMessage:
    """同步执行一次流式对话并返回完整的 assistant 消息。

    Raises:
        各种 domain.exceptions 中定义的异常；超时抛出 TimeoutError 并取消请求
    """
    assembler = MessageAssembler()
    client = stream_chat(conversation, assembler, cfg=cfg, config=config)
    try:
        return assembler.wait(timeout)
    except TimeoutError:
        client.cancel("Timed out waiting for completion")
        logger.error("Chat completion timed out", extra={"extra": {"run_id": client.run_id, "timeout": timeout}})
        raise
