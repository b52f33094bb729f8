"""系统提示词加载工具。

按语言(locale) 从 prompts/<locale> 目录读取 IDE 助手的 system prompt，
请求构造器会把它作为请求中唯一且位于首位的 system 消息。
"""

from functools import lru_cache
from pathlib import Path


PROMPTS_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=None)
def load_system_prompt(locale: str = "en") -> str:
    """根据语言加载系统提示词文本，找不到对应语言时回退到 en。"""

    fname = PROMPTS_DIR / locale / "ide_assistant_system.md"
    if not fname.exists():
        fname = PROMPTS_DIR / "en" / "ide_assistant_system.md"
    return fname.read_text(encoding="utf-8").strip()
