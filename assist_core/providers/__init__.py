"""LLM Provider 集成层。

该包下的模块负责：
- 维护 Provider 与模型配置 (registry)。
- 构造 chat/completions 请求体 (request_builder)。
- 执行流式请求并发布增量片段 (openai_stream_client)。
"""

from typing import Optional

import httpx

from assist_core.config.settings import settings
from assist_core.providers.openai_stream_client import OpenAIStreamClient


def create_stream_client(cfg=None, transport: Optional[httpx.BaseTransport] = None) -> OpenAIStreamClient:
    """为一次请求创建新的流式客户端，默认使用全局配置。"""

    return OpenAIStreamClient(cfg or settings, transport=transport)


__all__ = ["OpenAIStreamClient", "create_stream_client"]
