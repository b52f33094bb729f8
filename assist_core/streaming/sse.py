"""SSE 数据行解码。

只关心以 "data:" 开头的行：
- 负载为 [DONE] 时表示流结束；
- 否则负载必须是 JSON，增量文本位于 choices[0].delta.content。

结构不符合预期时立即抛出 MalformedEventError，不做静默跳过，
以免掩盖协议变化。
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, Optional

from assist_core.domain.exceptions import MalformedEventError


DATA_PREFIX = "data:"
DONE_TOKEN = "[DONE]"


@dataclass(frozen=True)
class StreamEvent:
    """一条解码后的 SSE 数据行。"""

    done: bool = False
    text: Optional[str] = None
    finish_reason: Optional[str] = None
    raw: Optional[Dict[str, Any]] = None


DONE_EVENT = StreamEvent(done=True)


def decode_line(line: str) -> Optional[StreamEvent]:
    """解码单行；空行、注释及其他字段返回 None。"""

    if not line.startswith(DATA_PREFIX):
        return None
    data = line[len(DATA_PREFIX):].strip()
    if data == DONE_TOKEN:
        return DONE_EVENT
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        raise MalformedEventError(code="MALFORMED_EVENT", message=f"Invalid JSON in event: {e}", line=line) from e
    return _parse_payload(payload, line)


def iter_events(lines: Iterable[str]) -> Iterator[StreamEvent]:
    """逐行解码，遇到 [DONE] 产出结束事件后立即停止，剩余行不再读取。"""

    for line in lines:
        event = decode_line(line)
        if event is None:
            continue
        yield event
        if event.done:
            return


def _parse_payload(payload: Any, line: str) -> StreamEvent:
    try:
        choice = payload["choices"][0]
        delta = choice["delta"]
    except (KeyError, IndexError, TypeError) as e:
        raise MalformedEventError(
            code="MALFORMED_EVENT",
            message="Event payload has no choices[0].delta",
            line=line,
        ) from e
    if not isinstance(delta, dict):
        raise MalformedEventError(code="MALFORMED_EVENT", message="choices[0].delta is not an object", line=line)

    content = delta.get("content")
    if content is not None and not isinstance(content, str):
        raise MalformedEventError(code="MALFORMED_EVENT", message="delta.content is not a string", line=line)
    # role-only / finish_reason-only 增量没有文本，content 为 None
    return StreamEvent(text=content, finish_reason=choice.get("finish_reason"), raw=payload)
