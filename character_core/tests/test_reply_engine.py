import threading

import pytest

from character_core.agents.reply_engine import ReplyEngine
from character_core.agents.retry import RetryPolicy, is_retryable
from character_core.domain.exceptions import NetworkError, RateLimitError, UnknownProviderError, ValidationError
from character_core.domain.models import LLMProvider
from character_core.prompts import build_fallback_reply, build_prompt
from character_core.providers.mock_client import MOCK_PREFIX, MockClient
from character_core.providers.registry import ProviderRegistry


class FlakyAdapter:
    name = "openai"

    def __init__(self, failures=0, reply="Arr, ahoy!", error=None):
        self.failures = failures
        self.reply = reply
        self.error = error or NetworkError(code="NETWORK_ERROR", message="boom", provider=self.name)
        self.calls = 0
        self.prompts = []

    def generate(self, prompt):
        self.calls += 1
        self.prompts.append(prompt)
        if self.calls <= self.failures:
            raise self.error
        return self.reply

    def generate_stream(self, prompt):
        yield self.generate(prompt)


def make_engine(adapters, sleeps=None):
    policy = RetryPolicy(
        max_attempts=3,
        backoff_seconds=1.0,
        sleep=(sleeps.append if sleeps is not None else (lambda s: None)),
    )
    return ReplyEngine(ProviderRegistry(adapters), policy=policy)


def test_generate_first_attempt_succeeds():
    adapter = FlakyAdapter()
    engine = make_engine({LLMProvider.OPENAI: adapter})

    outcome = engine.generate("You are a pirate", "", "Hello", LLMProvider.OPENAI)
    assert outcome.text == "Arr, ahoy!"
    assert outcome.fallback is False
    assert outcome.attempts == 1
    assert adapter.prompts == [build_prompt("You are a pirate", "", "Hello")]


def test_generate_retries_transient_failures():
    sleeps = []
    adapter = FlakyAdapter(failures=2)
    engine = make_engine({LLMProvider.OPENAI: adapter}, sleeps)

    outcome = engine.generate("p", "", "Hello", "openai")
    assert outcome.text == "Arr, ahoy!"
    assert outcome.attempts == 3
    assert adapter.calls == 3
    assert sleeps == [1.0, 1.0]


def test_generate_falls_back_after_exhausting_attempts():
    adapter = FlakyAdapter(failures=10, error=RateLimitError(code="RATE_LIMIT", message="slow down"))
    engine = make_engine({LLMProvider.OPENAI: adapter})

    outcome = engine.generate("Captain", "", "Where is the gold?", LLMProvider.OPENAI)
    assert outcome.fallback is True
    assert outcome.attempts == 3
    assert adapter.calls == 3
    assert outcome.text == build_fallback_reply("Captain", "Where is the gold?")
    assert engine.generate_reply("Captain", "", "Where is the gold?", "openai") == outcome.text


def test_validation_errors_are_not_retried():
    adapter = FlakyAdapter(failures=10, error=ValidationError(code="MISSING_API_KEY", message="no key"))
    engine = make_engine({LLMProvider.OPENAI: adapter})

    outcome = engine.generate("p", "", "hi", LLMProvider.OPENAI)
    assert outcome.fallback is True
    assert adapter.calls == 1


def test_unknown_provider_raises_before_any_call():
    adapter = FlakyAdapter()
    engine = make_engine({LLMProvider.OPENAI: adapter})

    with pytest.raises(UnknownProviderError):
        engine.generate("p", "", "hi", LLMProvider.GEMINI)
    with pytest.raises(UnknownProviderError):
        engine.generate("p", "", "hi", "not-a-provider")
    assert adapter.calls == 0


def test_pirate_reply_with_mock_provider():
    engine = make_engine({LLMProvider.MOCK: MockClient()})

    reply = engine.generate_reply("You are a pirate", "", "Hello", LLMProvider.MOCK)
    assert reply == MOCK_PREFIX + "You are a pirate\nHistory:\n\nUser: Hello\nAssistant:"


def test_stream_with_mock_provider_matches_sync_reply():
    engine = make_engine({LLMProvider.MOCK: MockClient()})
    chunks, completed, errors = [], [], []

    handle = engine.generate_reply_stream(
        "You are a pirate",
        "",
        "Hello",
        LLMProvider.MOCK,
        on_chunk=chunks.append,
        on_error=errors.append,
        on_complete=lambda: completed.append(True),
    )
    assert handle.wait(5)
    assert errors == []
    assert completed == [True]
    assert "".join(chunks) == engine.generate_reply("You are a pirate", "", "Hello", LLMProvider.MOCK)


def test_stream_without_provider_uses_default(monkeypatch):
    class DummySettings:
        default_provider = "mock"

    monkeypatch.setattr("character_core.agents.reply_engine.settings", DummySettings())
    engine = make_engine({LLMProvider.MOCK: MockClient()})
    done = threading.Event()

    handle = engine.generate_reply_stream("p", None, "hi", None, on_chunk=lambda c: None, on_complete=done.set)
    assert handle.wait(5)
    assert done.is_set()


def test_stream_unknown_provider_raises_synchronously():
    engine = make_engine({LLMProvider.MOCK: MockClient()})
    with pytest.raises(UnknownProviderError):
        engine.generate_reply_stream("p", "", "hi", "ollama", on_chunk=lambda c: None)


def test_is_retryable():
    assert is_retryable(NetworkError(code="NETWORK_ERROR", message="x"))
    assert is_retryable(RuntimeError("x"))
    assert not is_retryable(UnknownProviderError(code="UNKNOWN_PROVIDER", message="x"))
    assert not is_retryable(KeyboardInterrupt())


def test_pirate_with_history_is_deterministic():
    engine = make_engine({LLMProvider.MOCK: MockClient()})

    first = engine.generate_reply("pirate", "USER: hi\n", "ahoy", "mock")
    second = engine.generate_reply("pirate", "USER: hi\n", "ahoy", "mock")
    assert first == second == MOCK_PREFIX + "pirate\nHistory:\nUSER: hi\n\nUser: ahoy\nAssistant:"
