"""对外 API 服务模块。

把持久化协作方与回复引擎组合起来，提供供 HTTP 层调用的简化接口。
"""

import logging
from typing import Any, Dict, Optional

from character_core.agents.reply_engine import ReplyEngine
from character_core.agents.streaming import StreamHandle, StreamSink
from character_core.config.settings import settings
from character_core.domain.conversation import Character, Conversation, ConversationStore, MessageRecord
from character_core.domain.models import LLMProvider
from character_core.infrastructure.logging.logger import log_event
from character_core.infrastructure.storage.memory_store import InMemoryConversationStore
from character_core.prompts import render_history
from character_core.providers import build_registry

USER_SENDER = "USER"
CHARACTER_SENDER = "CHARACTER"


class ChatService:
    def __init__(self, store: ConversationStore, engine: ReplyEngine):
        self._store = store
        self._engine = engine

    def shutdown(self) -> None:
        self._engine.shutdown()

    def create_character(self, name: str, persona: str, tags: str = "") -> Dict[str, Any]:
        return _character_to_dict(self._store.create_character(name, persona, tags))

    def get_character(self, character_id: int) -> Dict[str, Any]:
        return _character_to_dict(self._store.get_character(character_id))

    def create_conversation(self, character_id: int, user_id: str) -> Dict[str, Any]:
        conv = self._store.create_conversation(character_id, user_id)
        log_event(logging.INFO, "Created conversation", {"conversation_id": conv.id, "user_id": user_id})
        return {"conversationId": str(conv.id)}

    def get_conversation(self, conversation_id: int) -> Dict[str, Any]:
        return _conversation_to_dict(self._store.get_conversation(conversation_id))

    def send_message(
        self,
        conversation_id: int,
        text: Optional[str],
        persona: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> Dict[str, Any]:
        """保存用户消息、同步生成回复并保存角色消息。

        Returns:
            {"reply": 回复文本, "messageId": 角色消息ID}
        """
        text = text or ""
        # provider 非法时直接拒绝，不留下孤立的用户消息
        identity = LLMProvider.parse(provider or settings.default_provider)
        self._engine.registry.resolve(identity)
        conv = self._store.get_conversation(conversation_id)
        history = render_history(conv.messages)
        if persona is None:
            persona = self._store.get_character(conv.character_id).persona or ""
        self._store.append_message(conversation_id, USER_SENDER, text)

        outcome = self._engine.generate(
            persona,
            history,
            text,
            identity,
        )
        metadata = "fallback" if outcome.fallback else None
        assistant = self._store.append_message(conversation_id, CHARACTER_SENDER, outcome.text, metadata)
        return {"reply": outcome.text, "messageId": str(assistant.id)}

    def stream_message(
        self,
        conversation_id: int,
        message: str,
        sink: StreamSink,
        persona: Optional[str] = None,
        history: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> StreamHandle:
        """启动流式回复；persona / history 未传时从存储中补齐。"""

        conv = self._store.get_conversation(conversation_id)
        if persona is None:
            persona = self._store.get_character(conv.character_id).persona or ""
        if history is None:
            history = render_history(conv.messages)
        return self._engine.start_stream(persona, history, message, provider, sink)


def _character_to_dict(c: Character) -> Dict[str, Any]:
    return {"id": str(c.id), "name": c.name, "persona": c.persona, "tags": c.tags}


def _message_to_dict(m: MessageRecord) -> Dict[str, Any]:
    return {
        "id": str(m.id),
        "sender": m.sender,
        "content": m.content,
        "metadata": m.metadata,
        "createdAt": m.created_at.isoformat(),
    }


def _conversation_to_dict(conv: Conversation) -> Dict[str, Any]:
    return {
        "id": str(conv.id),
        "characterId": str(conv.character_id),
        "messages": [_message_to_dict(m) for m in conv.messages],
    }


_service: Optional[ChatService] = None


def get_default_service() -> ChatService:
    """获取默认的 ChatService 实例（单例）。"""
    global _service
    if _service is None:
        _service = ChatService(
            store=InMemoryConversationStore(),
            engine=ReplyEngine(build_registry(settings)),
        )
    return _service
