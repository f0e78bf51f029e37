"""DeepSeek Provider 适配器。

DeepSeek 的 chat/completions 与 OpenAI 协议兼容，
只是地址、模型和配置前缀不同（DEEPSEEK_API_KEY / DEEPSEEK_BASE_URL / DEEPSEEK_MODEL）。
"""

from character_core.providers.openai_client import OpenAIClient
from character_core.providers.registry import DEEPSEEK_CONFIG, ProviderConfig


class DeepSeekClient(OpenAIClient):
    """DeepSeek Provider 客户端实现。"""

    name = "deepseek"
    config: ProviderConfig = DEEPSEEK_CONFIG
