"""按连接 ID 索引的音频会话表。

这是核心中唯一的共享可变状态：多个连接的处理协程与音频处理线程的回调
会并发访问它，所以每次增删改都在同一把锁内完成。
"""

import threading
from typing import Any, Callable, Dict, List, Optional

from character_core.domain.exceptions import SessionNotFoundError
from character_core.domain.models import AudioSession


class SessionTable:
    def __init__(self):
        self._lock = threading.RLock()
        self._sessions: Dict[str, AudioSession] = {}

    def create(self, connection_id: str, connection: Any, sample_rate: int = 16000) -> AudioSession:
        session = AudioSession(connection_id=connection_id, sample_rate=sample_rate, connection=connection)
        with self._lock:
            if connection_id in self._sessions:
                raise ValueError(f"Session already exists: {connection_id}")
            self._sessions[connection_id] = session
        return session

    def get(self, connection_id: str) -> AudioSession:
        with self._lock:
            session = self._sessions.get(connection_id)
        if session is None:
            raise SessionNotFoundError(code="SESSION_NOT_FOUND", message=f"No session for {connection_id}")
        return session

    def deliver(self, connection_id: str, send: Callable[[Any], None]) -> None:
        """在锁内查找会话并把连接交给 send；与 remove 互斥，
        因此会话删除之后不会再有新的出站帧。"""

        with self._lock:
            session = self._sessions.get(connection_id)
            if session is None:
                raise SessionNotFoundError(code="SESSION_NOT_FOUND", message=f"No session for {connection_id}")
            send(session.connection)

    def update(self, connection_id: str, **changes) -> AudioSession:
        """在锁内修改会话字段（active / sample_rate）。"""

        with self._lock:
            session = self._sessions.get(connection_id)
            if session is None:
                raise SessionNotFoundError(code="SESSION_NOT_FOUND", message=f"No session for {connection_id}")
            for key, value in changes.items():
                setattr(session, key, value)
            return session

    def remove(self, connection_id: str) -> Optional[AudioSession]:
        """删除并返回会话；已经删除过时返回 None。"""

        with self._lock:
            return self._sessions.pop(connection_id, None)

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, connection_id: object) -> bool:
        with self._lock:
            return connection_id in self._sessions
