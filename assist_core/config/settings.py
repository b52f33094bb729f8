"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置。
流式客户端每次 run 开始时从这里取一次快照（RequestConfig），
运行中不会再读取。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("ASSIST_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class AssistSettings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- Provider 相关配置 ----
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API 密钥")
    openai_api_url: str = Field(
        default="https://api.openai.com/v1/chat/completions",
        description="chat/completions 端点完整 URL",
    )
    default_model: str = Field(
        default="ide-chat",
        description="逻辑模型名，由 registry 映射为具体厂商模型；未登记的名称原样发送",
    )
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="生成温度")
    include_message_extensions: bool = Field(
        default=False,
        description="是否在请求中携带 name / function_call 字段",
    )
    prompt_locale: str = Field(default="en", description="系统提示词语言目录")

    # ---- 网络与流式 ----
    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")
    stream_buffer_size: int = Field(
        default=256,
        ge=1,
        description="每个订阅者最多缓存的未投递片段数",
    )
    publish_timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="订阅者缓冲区满时生产者最长等待时间（秒）",
    )

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("openai_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = AssistSettings()

# 类型别名，让外部代码可以使用 Settings 类型
Settings = AssistSettings
