import httpx
import pytest

from character_core.domain.exceptions import ApiError, NetworkError, RateLimitError, ValidationError
from character_core.providers.deepseek_client import DeepSeekClient
from character_core.providers.openai_client import OpenAIClient


class SettingsStub:
    openai_api_key = "sk-openai-test"
    openai_base_url = "https://api.openai.com/v1"
    openai_model = "gpt-4o-mini"
    deepseek_api_key = "sk-deepseek-test"
    deepseek_base_url = "https://api.deepseek.com/v1"
    deepseek_model = "deepseek-chat"
    http_timeout = 1.0


class FakeResponse:
    def __init__(self, status_code=200, body=None, lines=()):
        self.status_code = status_code
        self._body = body
        self._lines = list(lines)

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body

    def read(self):
        return b"upstream exploded"

    def iter_lines(self):
        for line in self._lines:
            yield line


class StreamContext:
    def __init__(self, response):
        self._response = response

    def __enter__(self):
        return self._response

    def __exit__(self, *args):
        return False


def make_client(response=None, calls=None, error=None):
    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, **kw):
            if calls is not None:
                calls.append((url, kw))
            if error is not None:
                raise error
            return response

        def stream(self, method, url, **kw):
            if calls is not None:
                calls.append((url, kw))
            if error is not None:
                raise error
            return StreamContext(response)

    return Client


def test_openai_generate(monkeypatch):
    calls = []
    body = {"choices": [{"index": 0, "message": {"role": "assistant", "content": "Arr!"}}]}
    monkeypatch.setattr("httpx.Client", make_client(FakeResponse(body=body), calls))

    assert OpenAIClient(SettingsStub()).generate("prompt") == "Arr!"
    url, kw = calls[0]
    assert url == "https://api.openai.com/v1/chat/completions"
    assert kw["json"]["messages"] == [{"role": "user", "content": "prompt"}]
    assert kw["json"]["stream"] is False
    assert kw["headers"]["Authorization"] == "Bearer sk-openai-test"


def test_openai_generate_empty_choices_returns_placeholder(monkeypatch):
    monkeypatch.setattr("httpx.Client", make_client(FakeResponse(body={"choices": []})))
    assert OpenAIClient(SettingsStub()).generate("p") == "[OpenAI] no content returned"


def test_deepseek_uses_own_endpoint(monkeypatch):
    calls = []
    body = {"choices": [{"message": {"content": "ok"}}]}
    monkeypatch.setattr("httpx.Client", make_client(FakeResponse(body=body), calls))

    assert DeepSeekClient(SettingsStub()).generate("p") == "ok"
    url, kw = calls[0]
    assert url == "https://api.deepseek.com/v1/chat/completions"
    assert kw["json"]["model"] == "deepseek-chat"


def test_openai_error_mapping(monkeypatch):
    client = OpenAIClient(SettingsStub())

    monkeypatch.setattr("httpx.Client", make_client(FakeResponse(status_code=429)))
    with pytest.raises(RateLimitError):
        client.generate("p")

    monkeypatch.setattr("httpx.Client", make_client(FakeResponse(status_code=500)))
    with pytest.raises(ApiError) as exc_info:
        client.generate("p")
    assert exc_info.value.extra["status_code"] == 500

    monkeypatch.setattr("httpx.Client", make_client(error=httpx.ConnectError("refused")))
    with pytest.raises(NetworkError):
        client.generate("p")

    monkeypatch.setattr("httpx.Client", make_client(FakeResponse(body=None)))
    with pytest.raises(ApiError) as exc_info:
        client.generate("p")
    assert exc_info.value.code == "BAD_PAYLOAD"


def test_openai_missing_key_is_validation_error():
    class NoKey(SettingsStub):
        openai_api_key = None

    with pytest.raises(ValidationError) as exc_info:
        OpenAIClient(NoKey()).generate("p")
    assert exc_info.value.code == "MISSING_API_KEY"


def test_openai_stream(monkeypatch):
    lines = [
        'data: {"choices": [{"index": 0, "delta": {"role": "assistant"}}]}',
        'data: {"choices": [{"index": 0, "delta": {"content": "A"}}]}',
        "",
        'data: {"choices": [{"index": 0, "delta": {"content": "B"}}]}',
        "data: [DONE]",
        'data: {"choices": [{"index": 0, "delta": {"content": "ignored"}}]}',
    ]
    calls = []
    monkeypatch.setattr("httpx.Client", make_client(FakeResponse(lines=lines), calls))

    assert list(OpenAIClient(SettingsStub()).generate_stream("p")) == ["A", "B"]
    assert calls[0][1]["json"]["stream"] is True


def test_openai_stream_http_error(monkeypatch):
    monkeypatch.setattr("httpx.Client", make_client(FakeResponse(status_code=503)))
    with pytest.raises(ApiError) as exc_info:
        list(OpenAIClient(SettingsStub()).generate_stream("p"))
    assert "upstream exploded" in exc_info.value.message
