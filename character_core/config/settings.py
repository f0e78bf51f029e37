"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置。
优先级：显式参数 > 环境变量 > .env > config.yaml > secrets。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("CHARACTER_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class Settings(BaseSettings):
    """服务配置（使用 Pydantic）。"""

    # ---- Provider 选择 ----
    default_provider: str = Field(
        default="ollama",
        description="请求未指定 provider 时使用的默认值，例如 ollama、openai、mock",
    )

    # OpenAI
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API 密钥")
    openai_base_url: str = Field(default="https://api.openai.com/v1", description="OpenAI API 基础URL")
    openai_model: str = Field(default="gpt-4o-mini", description="OpenAI 模型 ID")

    # DeepSeek
    deepseek_api_key: Optional[str] = Field(default=None, description="DeepSeek API 密钥")
    deepseek_base_url: str = Field(default="https://api.deepseek.com/v1", description="DeepSeek API 基础URL")
    deepseek_model: str = Field(default="deepseek-chat", description="DeepSeek 模型 ID")

    # Ollama（本地推理服务，无需密钥）
    ollama_base_url: str = Field(default="http://localhost:11434", description="Ollama 服务地址")
    ollama_model: str = Field(default="llama3", description="Ollama 模型名")

    # Gemini
    gemini_api_key: Optional[str] = Field(default=None, description="Gemini API 密钥")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Gemini REST API 基础URL",
    )
    gemini_model: str = Field(default="gemini-2.5-flash", description="Gemini 模型 ID")

    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")

    # ---- 重试 / 流式 ----
    retry_max_attempts: int = Field(default=3, ge=1, le=10, description="生成调用最大尝试次数")
    retry_backoff_seconds: float = Field(default=1.0, ge=0.0, description="两次尝试之间的固定等待（秒）")
    stream_idle_timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="SSE 消费端等待下一个片段的超时（秒），防止无输出的流永久挂起",
    )
    stream_workers: int = Field(default=8, ge=1, description="驱动流式生成的后台线程数")

    # ---- 实时音频 ----
    audio_default_sample_rate: int = Field(default=16000, description="新连接的默认采样率")
    audio_workers: int = Field(default=4, ge=1, description="音频片段处理线程数")
    audio_transcript_max_chars: int = Field(default=200, ge=1, description="模拟识别文本的最大长度")

    # ---- 日志 / 服务 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_level: str = Field(default="INFO", description="日志级别：INFO 或 DEBUG")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")
    host: str = Field(default="127.0.0.1", description="HTTP 监听地址")
    port: int = Field(default=8000, description="HTTP 监听端口")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("openai_api_key", "deepseek_api_key", "gemini_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = Settings()
