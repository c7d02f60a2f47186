"""生成端点集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供具体实现 (gemini_client)。
"""

from typing import Optional

from chat_core.config.settings import settings
from chat_core.providers.base import ProviderClient
from chat_core.providers.gemini_client import GeminiClient
from chat_core.providers.registry import get_provider_config


def create_provider(name: Optional[str] = None) -> ProviderClient:
    """根据名称创建 Provider 实例，默认取配置中的 provider。"""

    provider_name = (name or getattr(settings, "default_provider", "gemini")).lower()
    cfg = get_provider_config(provider_name)
    model = getattr(settings, "default_model", "chat")
    if model not in cfg.models:
        raise KeyError(f"Unknown model {model!r} for provider {cfg.name!r}")
    return GeminiClient(settings, model=model)
