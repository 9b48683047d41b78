import json
import sys
from pathlib import Path

import requests

# Ensure workspace package imports work during tests
sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from wordguard.core.types import ChatMessage, ChatRequest
from wordguard.llm.client import LLMClient
from wordguard.llm.service import LLMService


class FakeResponse:
    def __init__(self, payload=None, lines=None, status_code=200):
        self.payload = payload
        self.lines = lines or []
        self.status_code = status_code
        self.encoding = None

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(response=self)

    def json(self):
        return self.payload

    def iter_lines(self, decode_unicode=False):
        return iter(self.lines)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.posts = []

    def post(self, url, **kwargs):
        self.posts.append((url, kwargs))
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


def test_complete_parses_choice(monkeypatch):
    monkeypatch.delenv("LLM_API_KEY", raising=False)
    session = FakeSession(FakeResponse({"choices": [{"message": {"content": "  hi  "}}]}))
    client = LLMClient(url="http://llm", key_file=None, session=session)

    assert client.complete({"model": "m", "messages": []}) == "hi"
    url, kwargs = session.posts[0]
    assert url == "http://llm"
    assert kwargs["json"]["stream"] is False
    assert "Authorization" not in kwargs["headers"]


def test_complete_sends_bearer_key(monkeypatch):
    monkeypatch.setenv("LLM_API_KEY", "secret")
    session = FakeSession(FakeResponse({"choices": [{"message": {"content": "ok"}}]}))
    client = LLMClient(url="http://llm", session=session)

    client.complete({"messages": []})

    assert session.posts[0][1]["headers"]["Authorization"] == "Bearer secret"


def test_http_error_is_sanitized():
    client = LLMClient(url="http://llm", session=FakeSession(FakeResponse(status_code=503)))
    assert client.complete({}) == "\nLLM HTTP ERROR (503)\n"


def test_connection_error_is_sanitized():
    session = FakeSession(requests.exceptions.ConnectionError("refused"))
    client = LLMClient(url="http://llm", session=session)

    assert client.complete({}) == "\nLLM HTTP ERROR\n"
    assert list(client.stream({})) == ["\nLLM HTTP ERROR\n"]


def test_stream_parses_sse_lines():
    lines = [
        "",
        "data: " + json.dumps({"choices": [{"delta": {"content": "Hel"}}]}),
        "not json",
        "data: " + json.dumps({"choices": [{"delta": {"content": "lo"}}]}),
        "data: [DONE]",
        "data: " + json.dumps({"choices": [{"delta": {"content": "ignored"}}]}),
    ]
    client = LLMClient(url="http://llm", session=FakeSession(FakeResponse(lines=lines)))

    assert list(client.stream({})) == ["Hel", "lo"]


def test_service_builds_payload_from_request():
    session = FakeSession(FakeResponse({"choices": [{"message": {"content": "ok"}}]}))
    service = LLMService(LLMClient(url="http://llm", session=session), model="base-model")
    request = ChatRequest(messages=[ChatMessage("system", "s"), ChatMessage("user", "u")])

    assert service.call(request) == "ok"
    payload = session.posts[0][1]["json"]
    assert payload["model"] == "base-model"
    assert payload["messages"] == [
        {"role": "system", "content": "s"},
        {"role": "user", "content": "u"},
    ]
