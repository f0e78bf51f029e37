from dataclasses import dataclass, field
from typing import Optional, List, Protocol
from datetime import datetime


@dataclass
class Character:
    id: int
    name: str
    persona: str
    tags: str = ""


@dataclass
class MessageRecord:
    id: int
    conversation_id: int
    sender: str
    content: str
    metadata: Optional[str]
    created_at: datetime


@dataclass
class Conversation:
    id: int
    character_id: int
    user_id: str
    created_at: datetime
    updated_at: datetime
    messages: List[MessageRecord] = field(default_factory=list)


class ConversationStore(Protocol):
    """持久化协作方。编排层只依赖这几个操作，存储引擎不在本包范围内。"""

    def create_character(self, name: str, persona: str, tags: str = "") -> Character:
        ...

    def get_character(self, character_id: int) -> Character:
        ...

    def create_conversation(self, character_id: int, user_id: str) -> Conversation:
        ...

    def get_conversation(self, conversation_id: int) -> Conversation:
        ...

    def append_message(
        self,
        conversation_id: int,
        sender: str,
        content: str,
        metadata: Optional[str] = None,
    ) -> MessageRecord:
        ...
