from typing import Iterator, List, Optional, Protocol
from uuid import uuid4

from .models import ChatMessage


class ConversationSource(Protocol):
    """按时间顺序提供历史消息的协作方。"""

    def messages(self) -> List[ChatMessage]:
        ...


class Conversation:
    """内存中的有序会话，插入顺序即时间顺序。"""

    def __init__(self, id: Optional[str] = None, messages: Optional[List[ChatMessage]] = None):
        self.id = id or f"c-{uuid4().hex}"
        self._messages: List[ChatMessage] = list(messages or [])

    def add(self, message: ChatMessage) -> ChatMessage:
        self._messages.append(message)
        return message

    def messages(self) -> List[ChatMessage]:
        return list(self._messages)

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(self.messages())

    def __len__(self) -> int:
        return len(self._messages)
