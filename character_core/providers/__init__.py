"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护 Provider 默认配置与只读注册表 (registry)。
- 提供各后端的具体实现 (openai_client、deepseek_client、ollama_client、
  gemini_client、mock_client)。
"""

from typing import Optional, Union

from character_core.config.settings import settings
from character_core.domain.models import LLMProvider
from character_core.providers.base import ProviderClient
from character_core.providers.deepseek_client import DeepSeekClient
from character_core.providers.gemini_client import GeminiClient
from character_core.providers.mock_client import MockClient
from character_core.providers.ollama_client import OllamaClient
from character_core.providers.openai_client import OpenAIClient
from character_core.providers.registry import ProviderRegistry


def create_provider(name: Union[str, LLMProvider, None] = None, cfg=None) -> ProviderClient:
    """根据名称创建 Provider 实例，默认取配置中的 default_provider。"""

    cfg = cfg or settings
    provider = LLMProvider.parse(name or getattr(cfg, "default_provider", "ollama"))
    if provider is LLMProvider.OPENAI:
        return OpenAIClient(cfg)
    if provider is LLMProvider.DEEPSEEK:
        return DeepSeekClient(cfg)
    if provider is LLMProvider.GEMINI:
        return GeminiClient(cfg)
    if provider is LLMProvider.MOCK:
        return MockClient()
    return OllamaClient(cfg)


def build_registry(cfg=None, providers: Optional[list] = None) -> ProviderRegistry:
    """启动时构建一次注册表；providers 为空时注册全部后端。"""

    selected = providers or list(LLMProvider)
    return ProviderRegistry({LLMProvider.parse(p): create_provider(p, cfg) for p in selected})


__all__ = ["ProviderClient", "ProviderRegistry", "build_registry", "create_provider"]
