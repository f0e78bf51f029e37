"""WebSocket 文本控制帧解析。

控制帧使用 JSON 对象，保留三种指令语义：

    {"type": "start"}
    {"type": "end"}
    {"type": "sampleRate", "value": 48000}

同时兼容两种简写：顶层直接给出 {"sampleRate": 48000}，
以及纯文本的 start / end。其余输入一律视为非法。
"""

import json
from dataclasses import dataclass
from typing import Literal, Optional

from character_core.domain.exceptions import ControlMessageError

ControlKind = Literal["start", "end", "sampleRate"]

MIN_SAMPLE_RATE = 8000
MAX_SAMPLE_RATE = 192000


@dataclass(frozen=True)
class ControlMessage:
    kind: ControlKind
    sample_rate: Optional[int] = None


def _invalid(reason: str) -> ControlMessageError:
    return ControlMessageError(code="INVALID_CONTROL_MESSAGE", message=reason)


def _parse_sample_rate(raw) -> int:
    # bool 是 int 的子类，需要单独排除
    if isinstance(raw, bool):
        raise _invalid("sampleRate must be an integer")
    if isinstance(raw, str) and raw.strip().isdigit():
        raw = int(raw.strip())
    if not isinstance(raw, int):
        raise _invalid("sampleRate must be an integer")
    if not MIN_SAMPLE_RATE <= raw <= MAX_SAMPLE_RATE:
        raise _invalid(f"sampleRate out of range: {raw}")
    return raw


def parse_control(payload: str) -> ControlMessage:
    text = (payload or "").strip()
    if text.lower() in ("start", "end"):
        return ControlMessage(kind=text.lower())  # type: ignore[arg-type]

    try:
        data = json.loads(text)
    except (ValueError, RecursionError):
        raise _invalid("Control message is not valid JSON")
    if not isinstance(data, dict):
        raise _invalid("Control message must be a JSON object")

    kind = data.get("type")
    if kind in ("start", "end"):
        return ControlMessage(kind=kind)
    if kind == "sampleRate":
        return ControlMessage(kind="sampleRate", sample_rate=_parse_sample_rate(data.get("value", data.get("sampleRate"))))
    if kind is None and "sampleRate" in data:
        return ControlMessage(kind="sampleRate", sample_rate=_parse_sample_rate(data["sampleRate"]))
    raise _invalid(f"Unknown control directive: {kind!r}")
