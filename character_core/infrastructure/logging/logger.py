"""结构化日志。

所有模块共用名为 "character_core" 的 logger，输出 JSON Lines 到
{log_dir}/character.log。业务字段通过 log_event 平铺进同一行 JSON，
便于按 trace_id / connection_id 检索。
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from character_core.config.settings import settings

LOGGER_NAME = "character_core"
# 开启 log_redact_content 时这些字段只保留长度
_CONTENT_FIELDS = ("prompt", "text", "reply", "content")


class JsonFormatter(logging.Formatter):
    def __init__(self, redact: bool = False):
        super().__init__()
        self._redact = redact

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if self._redact:
            msg = msg[:64]
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "thread": record.threadName,
            "msg": msg,
        }
        fields = getattr(record, "extra", None)
        if isinstance(fields, dict):
            for key, value in fields.items():
                if self._redact and key in _CONTENT_FIELDS and isinstance(value, str):
                    value = f"<{len(value)} chars>"
                payload[key] = value
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger() -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if settings.log_level.upper() == "DEBUG" else logging.INFO)
    if logger.handlers:
        return logger
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(log_dir / "character.log", encoding="utf-8")
    fh.setFormatter(JsonFormatter(redact=settings.log_redact_content))
    logger.addHandler(fh)
    return logger


logger = setup_logger()


def log_event(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
    """写一条结构化日志；log_ctx 与 fields 合并后平铺进 JSON 行。"""

    payload = dict(log_ctx)
    payload.update(fields)
    logger.log(level, message, extra={"extra": payload})
