"""Character Core 顶层包。

该包提供角色对话服务的核心实现：
配置加载、领域模型、Provider 适配、带重试与降级的回复编排、
流式回复投递、实时音频会话管理，以及 HTTP / WebSocket 传输层。
"""

from character_core.agents.reply_engine import ReplyEngine
from character_core.domain.models import GenerationOutcome, LLMProvider, StreamEvent

__all__ = ["GenerationOutcome", "LLMProvider", "ReplyEngine", "StreamEvent"]
