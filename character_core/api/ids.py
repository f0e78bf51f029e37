"""外部数字 ID 的校验与转换。

ID 对外以十进制字符串表示（最多 19 位），进入核心之前转换为 int。
"""

import re
from typing import Union

from character_core.domain.exceptions import InvalidIdentifierError

_ID_PATTERN = re.compile(r"[0-9]{1,19}")
MAX_ID = 2**63 - 1


def parse_id(raw: Union[str, int, None]) -> int:
    if raw is None:
        raise InvalidIdentifierError(code="INVALID_ID", message="id is null")
    text = str(raw).strip()
    if not text:
        raise InvalidIdentifierError(code="INVALID_ID", message="id is blank")
    if not _ID_PATTERN.fullmatch(text):
        raise InvalidIdentifierError(code="INVALID_ID", message="id must be numeric up to 19 digits")
    value = int(text)
    if value > MAX_ID:
        raise InvalidIdentifierError(code="INVALID_ID", message="id is out of range")
    return value
