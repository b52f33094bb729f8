"""chat/completions 请求体构造。

把 Conversation + RequestConfig 转成 OpenAI 格式的 JSON 字节串：

    {"model": ..., "messages": [system, *history], "temperature": ..., "stream": true}

相同输入总是得到相同字节，便于测试与日志比对。
"""

import json
from typing import Any, Dict, List, Optional

from assist_core.domain.conversation import ConversationSource
from assist_core.domain.exceptions import SerializationError
from assist_core.domain.models import ChatMessage, RequestConfig
from assist_core.prompts import load_system_prompt


def build_request_body(
    conversation: ConversationSource,
    config: RequestConfig,
    system_prompt: Optional[str] = None,
    include_extensions: bool = False,
    locale: str = "en",
) -> bytes:
    """构造请求体。

    Args:
        conversation: 提供有序历史消息的会话。
        config: 本次请求的配置快照。
        system_prompt: 覆盖默认的系统提示词。
        include_extensions: 是否携带 name / function_call 字段。
        locale: 未给出 system_prompt 时加载哪种语言的默认提示词。

    Raises:
        SerializationError: 会话里已有 system 消息，或内容无法编码。
    """

    payload = build_payload(conversation, config, system_prompt, include_extensions, locale)
    try:
        text = json.dumps(payload, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
        return text.encode("utf-8")
    except (TypeError, ValueError) as e:
        # UnicodeEncodeError 是 ValueError 的子类（例如孤立的代理字符）
        raise SerializationError(code="SERIALIZATION_ERROR", message=str(e)) from e


def build_payload(
    conversation: ConversationSource,
    config: RequestConfig,
    system_prompt: Optional[str] = None,
    include_extensions: bool = False,
    locale: str = "en",
) -> Dict[str, Any]:
    if system_prompt is None:
        system_prompt = load_system_prompt(locale)
    messages: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    for message in conversation.messages():
        if message.role == "system":
            raise SerializationError(
                code="DUPLICATE_SYSTEM_MESSAGE",
                message=f"Conversation message {message.id} has role 'system'; the system preamble is added automatically",
            )
        messages.append(_message_to_payload(message, include_extensions))

    return {
        "model": config.model,
        "messages": messages,
        "temperature": config.temperature,
        "stream": True,
    }


def _message_to_payload(message: ChatMessage, include_extensions: bool) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"role": message.role, "content": message.content}
    if include_extensions:
        if message.name:
            payload["name"] = message.name
        if message.function_call:
            payload["function_call"] = {
                "name": message.function_call.name,
                "arguments": message.function_call.arguments,
            }
    return payload
