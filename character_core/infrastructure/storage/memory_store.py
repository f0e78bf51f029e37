import itertools
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

from character_core.domain.conversation import Character, Conversation, ConversationStore, MessageRecord
from character_core.domain.exceptions import NotFoundError


class InMemoryConversationStore(ConversationStore):
    """进程内存储，用于本地运行与测试；重启后数据丢失。"""

    def __init__(self):
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._characters: Dict[int, Character] = {}
        self._conversations: Dict[int, Conversation] = {}
        self._messages: Dict[int, List[MessageRecord]] = {}

    def create_character(self, name: str, persona: str, tags: str = "") -> Character:
        with self._lock:
            character = Character(id=next(self._ids), name=name, persona=persona, tags=tags)
            self._characters[character.id] = character
        return character

    def get_character(self, character_id: int) -> Character:
        with self._lock:
            character = self._characters.get(character_id)
        if character is None:
            raise NotFoundError(code="CHARACTER_NOT_FOUND", message=f"Character not found: {character_id}")
        return character

    def create_conversation(self, character_id: int, user_id: str) -> Conversation:
        self.get_character(character_id)
        now = datetime.now(timezone.utc)
        with self._lock:
            conv = Conversation(
                id=next(self._ids),
                character_id=character_id,
                user_id=user_id,
                created_at=now,
                updated_at=now,
            )
            self._conversations[conv.id] = conv
            self._messages[conv.id] = []
        return replace(conv, messages=[])

    def get_conversation(self, conversation_id: int) -> Conversation:
        with self._lock:
            conv = self._conversations.get(conversation_id)
            if conv is None:
                raise NotFoundError(
                    code="CONVERSATION_NOT_FOUND",
                    message=f"Conversation not found: {conversation_id}",
                )
            return replace(conv, messages=list(self._messages[conversation_id]))

    def append_message(
        self,
        conversation_id: int,
        sender: str,
        content: str,
        metadata: Optional[str] = None,
    ) -> MessageRecord:
        now = datetime.now(timezone.utc)
        with self._lock:
            conv = self._conversations.get(conversation_id)
            if conv is None:
                raise NotFoundError(
                    code="CONVERSATION_NOT_FOUND",
                    message=f"Conversation not found: {conversation_id}",
                )
            record = MessageRecord(
                id=next(self._ids),
                conversation_id=conversation_id,
                sender=sender,
                content=content,
                metadata=metadata,
                created_at=now,
            )
            self._messages[conversation_id].append(record)
            conv.updated_at = now
        return record
