"""统一的对话数据模型。

- ChatMessage: 一条对话消息，内容缓冲区只允许追加，发送后封存。
- FunctionCall: 模型发起的函数调用（部分 Provider 才会序列化）。
- RequestConfig: 单次请求使用的配置快照。

流式客户端与请求构造器只依赖这些模型，不直接读取全局配置。
"""

from dataclasses import dataclass, field
from typing import List, Literal, Optional
from uuid import uuid4

from assist_core.domain.exceptions import ValidationError


# 消息角色（与 OpenAI chat/completions 的 role 字段对应）
Role = Literal["system", "user", "assistant"]

# 发布给订阅者的一段增量文本
Fragment = str


@dataclass
class FunctionCall:
    """模型发起的函数调用，arguments 保持厂商返回的 JSON 字符串。"""

    name: str
    arguments: str = ""


class ChatMessage:
    """一条对话消息。

    - id: 消息标识，会话内唯一（只假定，不校验）。
    - role: system/user/assistant。
    - name: 可选的发送者名称。
    - content: 只读文本；写入只能通过 append/set_content。
    - function_call: 可选的函数调用。

    消息被发送后会调用 seal()，之后任何修改都会抛出 ValidationError。
    组装流式回答时，MessageAssembler 是唯一的写入方。
    """

    def __init__(
        self,
        id: str,
        role: Role,
        content: str = "",
        name: Optional[str] = None,
        function_call: Optional[FunctionCall] = None,
    ):
        self.id = id
        self.role = role
        self.name = name
        self.function_call = function_call
        self._chunks: List[str] = [content] if content else []
        self._sealed = False

    @classmethod
    def create(cls, role: Role, content: str = "", name: Optional[str] = None) -> "ChatMessage":
        return cls(id=f"m-{uuid4().hex}", role=role, content=content, name=name)

    @property
    def content(self) -> str:
        return "".join(self._chunks)

    @property
    def sealed(self) -> bool:
        return self._sealed

    def append(self, text: str) -> None:
        self._ensure_open()
        if text:
            self._chunks.append(text)

    def set_content(self, text: str) -> None:
        self._ensure_open()
        self._chunks = [text] if text else []

    def set_function_call(self, function_call: Optional[FunctionCall]) -> None:
        self._ensure_open()
        self.function_call = function_call

    def seal(self) -> None:
        self._sealed = True

    def _ensure_open(self) -> None:
        if self._sealed:
            raise ValidationError(code="MESSAGE_SEALED", message=f"Message {self.id} has already been sent")

    def __repr__(self) -> str:
        return f"ChatMessage(id={self.id!r}, role={self.role!r}, content={self.content!r})"


@dataclass(frozen=True)
class RequestConfig:
    """一次请求的配置快照。

    每次 run 开始时生成一次，运行期间不再读取外部配置，
    这样中途修改配置只会影响下一次请求。
    """

    api_key: str = field(repr=False)
    api_url: str
    model: str
    temperature: float = 0.7
    stream: bool = True
