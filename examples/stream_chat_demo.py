"""Minimal demonstration of the streaming chat client."""

import sys

from dotenv import load_dotenv

# 加载.env文件中的环境变量（需在导入配置前完成）
load_dotenv()

from assist_core.api.service import stream_chat  # noqa: E402
from assist_core.domain.conversation import Conversation  # noqa: E402
from assist_core.domain.models import ChatMessage  # noqa: E402
from assist_core.streaming.subscribers import CallbackSubscriber  # noqa: E402


def main() -> int:
    question = " ".join(sys.argv[1:]) or "Write a Python function that reverses a string."
    conv = Conversation()
    conv.add(ChatMessage.create(role="user", content=question))

    errors = []
    subscriber = CallbackSubscriber(
        on_next=lambda fragment: print(fragment, end="", flush=True),
        on_complete=lambda: print(),
        on_error=errors.append,
    )
    print("User:", question)
    print("Assistant: ", end="")
    client = stream_chat(conv, subscriber)
    try:
        client.join()
    except KeyboardInterrupt:
        client.cancel("Interrupted")
        client.join(5)
    if errors:
        print(f"\nError: {errors[0]}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
