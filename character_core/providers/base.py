"""Provider 抽象接口。

编排层不直接依赖具体厂商的 HTTP API，而是依赖此协议：

- 每个后端实现一个 ProviderClient（如 OpenAIClient、OllamaClient）。
- generate(prompt) 执行一次同步调用并返回文本；失败时抛出 ProviderError。
- generate_stream(prompt) 按生成顺序逐个产出文本片段。

回调形式（on_chunk / on_error / on_complete）由 agents.streaming 在后台线程中
驱动该迭代器实现，适配器本身只需关心"下一个片段是什么"。
"""

from typing import Iterator, Protocol


class ProviderClient(Protocol):
    """LLM Provider 客户端协议。

    实现者需要提供：
    - name: Provider 名称，用于日志。
    - generate(prompt): 没有可用内容时返回占位文本而不是空串，
      以便与"抛出异常"区分开。
    """

    name: str

    def generate(self, prompt: str) -> str:
        ...

    def generate_stream(self, prompt: str) -> Iterator[str]:
        """执行一次流式调用，逐步产出文本增量。"""

        ...
