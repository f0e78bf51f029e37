"""统一的领域数据模型。

本模块定义了编排层与实时音频层共享的数据结构：

- LLMProvider: 枚举的 provider 标识，与注册表中的适配器一一对应。
- GenerationOutcome: 同步生成的结果，要么是模型文本，要么是降级文本。
- StreamEvent: 流式生成对外暴露的类型化事件。
- AudioSession: 单个 WebSocket 连接的会话状态。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Optional

from character_core.domain.exceptions import UnknownProviderError


class LLMProvider(str, Enum):
    """后端 provider 标识。值即对外参数中使用的名称。"""

    OPENAI = "openai"
    DEEPSEEK = "deepseek"
    OLLAMA = "ollama"
    MOCK = "mock"
    GEMINI = "gemini"

    @classmethod
    def parse(cls, raw: "str | LLMProvider") -> "LLMProvider":
        """解析外部传入的 provider 名称，不区分大小写。"""

        if isinstance(raw, LLMProvider):
            return raw
        key = (raw or "").strip().lower()
        for member in cls:
            if member.value == key:
                return member
        raise UnknownProviderError(
            code="UNKNOWN_PROVIDER",
            message=f"Unknown provider: {raw!r}",
            provider=raw,
        )


@dataclass(frozen=True)
class GenerationOutcome:
    """一次同步生成的结果。

    - text: 返回给调用方的文本，永远非空。
    - fallback: True 表示所有尝试都失败，text 为本地模拟回复。
    - attempts: 实际调用适配器的次数。
    """

    text: str
    fallback: bool = False
    attempts: int = 1
    provider: Optional[LLMProvider] = None


StreamEventKind = Literal["chunk", "completed", "failed"]


@dataclass(frozen=True)
class StreamEvent:
    """流式回复中的一个事件。

    一个流由若干 chunk 事件加上恰好一个终止事件（completed 或 failed）组成，
    终止事件之后不会再出现任何事件。
    """

    kind: StreamEventKind
    text: str = ""
    error: Optional[BaseException] = None

    @property
    def terminal(self) -> bool:
        return self.kind != "chunk"


@dataclass
class AudioSession:
    """一个实时音频连接的会话状态，生命周期与 socket 完全一致。"""

    connection_id: str
    active: bool = False
    sample_rate: int = 16000
    connection: Any = field(default=None, repr=False, compare=False)
