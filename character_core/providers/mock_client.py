"""确定性的 Mock Provider，用于测试与离线演示。"""

import re
from typing import Iterator


MOCK_PREFIX = "[MOCK LLM] received prompt: "


class MockClient:
    name = "mock"

    def generate(self, prompt: str) -> str:
        return MOCK_PREFIX + prompt

    def generate_stream(self, prompt: str) -> Iterator[str]:
        # 按"单词 + 其后空白"切分，拼接后与 generate 的结果完全一致
        for piece in re.findall(r"\S+\s*|\s+", self.generate(prompt)):
            yield piece
