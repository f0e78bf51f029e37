"""Provider 配置与注册表。

- ProviderConfig：每个后端的默认地址与模型，配置项缺省时回落到这里。
- ProviderRegistry：LLMProvider 标识 -> 适配器实例 的只读映射，
  在进程启动时构建一次，之后不再修改。

查不到适配器属于调用方/配置错误（UnknownProviderError），不会进入重试。"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping, Union

from character_core.domain.exceptions import UnknownProviderError
from character_core.domain.models import LLMProvider
from character_core.providers.base import ProviderClient


@dataclass(frozen=True)
class ProviderConfig:
    """某个 Provider 的默认配置。"""

    name: str
    label: str  # 日志与占位文本中展示的名称
    base_url: str
    model: str


OPENAI_CONFIG = ProviderConfig(
    name="openai",
    label="OpenAI",
    base_url="https://api.openai.com/v1",
    model="gpt-4o-mini",
)

DEEPSEEK_CONFIG = ProviderConfig(
    name="deepseek",
    label="DeepSeek",
    base_url="https://api.deepseek.com/v1",
    model="deepseek-chat",
)

OLLAMA_CONFIG = ProviderConfig(
    name="ollama",
    label="Ollama",
    base_url="http://localhost:11434",
    model="llama3",
)

GEMINI_CONFIG = ProviderConfig(
    name="gemini",
    label="Gemini",
    base_url="https://generativelanguage.googleapis.com/v1beta",
    model="gemini-2.5-flash",
)


class ProviderRegistry:
    """只读的 provider 注册表。"""

    def __init__(self, adapters: Mapping[LLMProvider, ProviderClient]):
        self._adapters: Mapping[LLMProvider, ProviderClient] = MappingProxyType(dict(adapters))

    def resolve(self, identity: Union[LLMProvider, str]) -> ProviderClient:
        """根据标识返回适配器；未注册时抛出 UnknownProviderError。"""

        provider = LLMProvider.parse(identity)
        adapter = self._adapters.get(provider)
        if adapter is None:
            raise UnknownProviderError(
                code="UNKNOWN_PROVIDER",
                message=f"No adapter registered for provider {provider.value!r}",
                provider=provider.value,
            )
        return adapter

    def identities(self) -> Iterable[LLMProvider]:
        return tuple(self._adapters)

    def __contains__(self, identity: object) -> bool:
        return identity in self._adapters
