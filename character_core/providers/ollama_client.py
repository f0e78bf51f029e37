"""Ollama 本地推理服务适配器。

- URL: {base_url}/api/generate
- 请求体: {"model", "prompt", "stream"}
- 非流式响应: {"response": "...", "done": true}
- 流式响应: 每行一个 JSON 对象（NDJSON），最后一行 done=true
"""

import json
from typing import Iterator

import httpx

from character_core.config.settings import settings
from character_core.domain.exceptions import ApiError, NetworkError, RateLimitError
from character_core.providers.registry import OLLAMA_CONFIG


class OllamaClient:
    """Ollama Provider 客户端实现（无需 API key）。"""

    name = "ollama"

    def __init__(self, cfg=settings):
        self._settings = cfg

    def generate(self, prompt: str) -> str:
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = client.post(f"{self._base_url()}/api/generate", json=self._build_payload(prompt, False))
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name)
        self._check_status(resp)
        try:
            data = resp.json()
        except ValueError as e:
            raise ApiError(code="BAD_PAYLOAD", message=str(e), provider=self.name)
        text = data.get("response") if isinstance(data, dict) else None
        if text:
            return str(text)
        return f"[{OLLAMA_CONFIG.label}] no content returned"

    def generate_stream(self, prompt: str) -> Iterator[str]:
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                with client.stream(
                    "POST",
                    f"{self._base_url()}/api/generate",
                    json=self._build_payload(prompt, True),
                ) as resp:
                    self._check_status(resp)
                    for line in resp.iter_lines():
                        line = line.strip()
                        if not line:
                            continue
                        try:
                            data = json.loads(line)
                        except json.JSONDecodeError:
                            continue
                        if data.get("error"):
                            raise ApiError(code="API_ERROR", message=str(data["error"]), provider=self.name)
                        piece = data.get("response") or ""
                        if piece:
                            yield piece
                        if data.get("done"):
                            break
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name)

    def _base_url(self) -> str:
        return getattr(self._settings, "ollama_base_url", None) or OLLAMA_CONFIG.base_url

    def _build_payload(self, prompt: str, stream: bool) -> dict:
        return {
            "model": getattr(self._settings, "ollama_model", None) or OLLAMA_CONFIG.model,
            "prompt": prompt,
            "stream": stream,
        }

    def _check_status(self, resp) -> None:
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="Ollama rate limit", provider=self.name)
        if resp.status_code >= 400:
            raise ApiError(
                code="API_ERROR",
                message=f"Ollama returned HTTP {resp.status_code}",
                provider=self.name,
                status_code=resp.status_code,
            )
