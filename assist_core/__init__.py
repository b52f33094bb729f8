"""Assist Core 顶层包。

IDE 编程助手的流式对话核心：把会话发送到 chat/completions 接口，
解析 SSE 增量并实时推送给订阅者（例如编辑器里的渲染组件）。
"""

from assist_core.domain.conversation import Conversation
from assist_core.domain.models import ChatMessage, RequestConfig
from assist_core.providers import OpenAIStreamClient, create_stream_client

__all__ = ["ChatMessage", "Conversation", "OpenAIStreamClient", "RequestConfig", "create_stream_client"]
