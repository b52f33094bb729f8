"""Provider 与模型配置。

本模块将“逻辑模型名”与“具体厂商模型名”解耦：

- 逻辑名（logical_name）：在代码里使用的统一名称，例如 "ide-chat"。
- provider_model：厂商实际提供的模型 ID，例如 "gpt-4o"。

未登记的模型名原样发送，方便用户直接在配置里写厂商模型 ID。"""

from dataclasses import dataclass
from typing import Dict

from assist_core.domain.models import RequestConfig


@dataclass
class ModelConfig:
    """单个逻辑模型的配置。"""

    logical_name: str
    provider_model: str
    default_temperature: float


@dataclass
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    api_url: str
    models: Dict[str, ModelConfig]


OPENAI_CONFIG = ProviderConfig(
    name="openai",
    api_url="https://api.openai.com/v1/chat/completions",
    models={
        "ide-chat": ModelConfig(
            logical_name="ide-chat",
            provider_model="gpt-4o",
            default_temperature=0.7,
        )
    },
)


def resolve_model(name: str) -> str:
    """逻辑模型名 -> 厂商模型 ID，名称不区分大小写。"""

    key = name.lower()
    for k, cfg in OPENAI_CONFIG.models.items():
        if k.lower() == key:
            return cfg.provider_model
    return name


def request_config_from_settings(cfg) -> RequestConfig:
    """从配置对象生成一次请求的快照。

    cfg 只需提供 openai_api_key / openai_api_url / default_model / temperature，
    测试里可以直接传简单的 stub 类。
    """

    logical = getattr(cfg, "default_model", None) or "ide-chat"
    model = resolve_model(logical)
    temperature = getattr(cfg, "temperature", None)
    if temperature is None:
        model_cfg = OPENAI_CONFIG.models.get(logical.lower())
        temperature = model_cfg.default_temperature if model_cfg else 0.7
    return RequestConfig(
        api_key=getattr(cfg, "openai_api_key", None) or "",
        api_url=getattr(cfg, "openai_api_url", None) or OPENAI_CONFIG.api_url,
        model=model,
        temperature=temperature,
    )
