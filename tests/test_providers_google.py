import asyncio
import json
from typing import Any, Dict, List

import httpx
import pytest

from agent_runtime import retry
from agent_runtime.domain import GoogleProviderConfig
from agent_runtime.errors import (
    NoContentError,
    NoValidCandidatesError,
    ProviderConnectionError,
    RetryableProviderError,
    SchemaValidationError,
    TerminalProviderError,
)
from agent_runtime.events import EventSink
from agent_runtime.models import Message, Persona
from agent_runtime.providers.google import GoogleProvider

MESSAGES = [
    Message(author="User", content="What is my balance?", timestamp="2024-05-01T10:00:00Z"),
    Message(author="Chatbot", content="Let me check.", timestamp="2024-05-01T10:00:01Z"),
    Message(author="User", content="Thanks", timestamp="2024-05-01T10:00:02Z"),
]

VERDICT_SCHEMA = {
    "type": "object",
    "properties": {"approved": {"type": "boolean"}},
    "required": ["approved"],
}


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    async def fake_sleep(_seconds: float) -> None:
        return None

    monkeypatch.setattr(retry, "_sleep", fake_sleep)


def _gemini(*texts: str) -> Dict[str, Any]:
    return {
        "candidates": [
            {"index": i, "content": {"role": "model", "parts": [{"text": t}]}} for i, t in enumerate(texts)
        ]
    }


class Vendor:
    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        template = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        return httpx.Response(template.status_code, headers=template.headers, content=template.content)

    def body(self, index: int = 0) -> Dict[str, Any]:
        return json.loads(self.requests[index].content)


def _provider(handler, **config) -> GoogleProvider:
    cfg = GoogleProviderConfig(api_key="g-key", model="gemini-test", **config)
    return GoogleProvider(cfg, transport=httpx.MockTransport(handler))


def test_generate_content_builds_gemini_request():
    vendor = Vendor(httpx.Response(200, json=_gemini("Your balance is 10")))
    provider = _provider(vendor)
    events = EventSink()

    result = asyncio.run(
        provider.generate_content(MESSAGES, "Answer briefly", persona=Persona(name="Zoe"), events=events)
    )

    assert result == "Your balance is 10"
    request = vendor.requests[0]
    assert request.url == "https://generativelanguage.googleapis.com/v1beta/models/gemini-test:generateContent"
    assert request.headers["x-goog-api-key"] == "g-key"

    body = vendor.body()
    assert [c["role"] for c in body["contents"]] == ["user", "model", "user"]
    assert body["contents"][0]["parts"] == [{"text": "What is my balance?"}]
    system_text = body["systemInstruction"]["parts"][0]["text"]
    assert system_text.startswith("<persona>")
    assert system_text.endswith("<instructions>\nAnswer briefly\n</instructions>")
    assert "generationConfig" not in body

    assert len(events) == 1
    assert events[0].payload.model == "gemini-test"
    assert json.loads(events[0].payload.prompt)["system_instruction"] == system_text


def test_system_instruction_omitted_when_empty():
    vendor = Vendor(httpx.Response(200, json=_gemini("ok")))
    provider = _provider(vendor)

    asyncio.run(provider.generate_content(MESSAGES))

    assert "systemInstruction" not in vendor.body()


def test_thought_parts_are_excluded_from_text():
    data = {
        "candidates": [
            {
                "content": {
                    "parts": [
                        {"text": "thinking...", "thought": True},
                        {"text": "Hello "},
                        {"text": "there"},
                    ]
                }
            }
        ]
    }
    provider = _provider(Vendor(httpx.Response(200, json=data)))

    assert asyncio.run(provider.generate_content(MESSAGES)) == "Hello there"


def test_thinking_budget_and_parameters_in_generation_config():
    vendor = Vendor(httpx.Response(200, json=_gemini("ok")))
    provider = _provider(vendor, thinking_budget=512)

    asyncio.run(provider.generate_content(MESSAGES, parameters={"temperature": 0.1}))

    config = vendor.body()["generationConfig"]
    assert config["thinkingConfig"] == {"thinkingBudget": 512}
    assert config["temperature"] == 0.1


def test_structured_content_sets_json_response_mime_type():
    vendor = Vendor(httpx.Response(200, json=_gemini('{"approved": true}')))
    provider = _provider(vendor)

    result = asyncio.run(provider.generate_structured_content(MESSAGES, VERDICT_SCHEMA))

    assert result == {"approved": True}
    config = vendor.body()["generationConfig"]
    assert config["responseMimeType"] == "application/json"
    assert config["responseJsonSchema"] == VERDICT_SCHEMA


def test_structured_content_invalid_json_raises_schema_error():
    provider = _provider(Vendor(httpx.Response(200, json=_gemini("definitely not json"))))
    events = EventSink()

    with pytest.raises(SchemaValidationError) as exc:
        asyncio.run(provider.generate_structured_content(MESSAGES, VERDICT_SCHEMA, events=events))

    assert "Failed to parse structured response" in str(exc.value)
    assert len(events) == 1


def test_candidates_request_candidate_count():
    vendor = Vendor(httpx.Response(200, json=_gemini("a", "b")))
    provider = _provider(vendor)

    assert asyncio.run(provider.generate_content_with_candidates(MESSAGES, 2)) == ["a", "b"]
    assert vendor.body()["generationConfig"]["candidateCount"] == 2


def test_candidates_missing_raise_no_content():
    provider = _provider(Vendor(httpx.Response(200, json={"candidates": []})))

    with pytest.raises(NoContentError) as exc:
        asyncio.run(provider.generate_content_with_candidates(MESSAGES, 2))

    assert "No content received from Google" in str(exc.value)


def test_structured_candidates_skip_and_exhaust():
    mixed = _provider(Vendor(httpx.Response(200, json=_gemini('{"approved": false}', '{"approved": "x"}'))))
    assert asyncio.run(mixed.generate_structured_content_with_candidates(MESSAGES, 2, VERDICT_SCHEMA)) == [
        {"approved": False}
    ]

    invalid = _provider(Vendor(httpx.Response(200, json=_gemini("{}", "[]"))))
    with pytest.raises(NoValidCandidatesError):
        asyncio.run(invalid.generate_structured_content_with_candidates(MESSAGES, 2, VERDICT_SCHEMA))


def test_server_errors_are_retried_then_succeed():
    vendor = Vendor(
        httpx.Response(503, json={"error": {"code": 503, "message": "overloaded"}}),
        httpx.Response(200, json=_gemini("recovered")),
    )
    provider = _provider(vendor)
    events = EventSink()

    assert asyncio.run(provider.generate_content(MESSAGES, events=events)) == "recovered"
    assert len(vendor.requests) == 2
    assert len(events) == 1


def test_rate_limit_exhaustion_raises_retryable_error():
    vendor = Vendor(httpx.Response(429, json={"error": {"message": "quota"}}))
    provider = _provider(vendor, max_retries=2)

    with pytest.raises(RetryableProviderError) as exc:
        asyncio.run(provider.generate_content(MESSAGES))

    assert exc.value.status_code == 429
    assert len(vendor.requests) == 3


@pytest.mark.parametrize("status", [400, 403, 404])
def test_client_errors_are_terminal(status):
    vendor = Vendor(httpx.Response(status, json={"error": {"message": "invalid argument"}}))
    provider = _provider(vendor)
    events = EventSink()

    with pytest.raises(TerminalProviderError):
        asyncio.run(provider.generate_content(MESSAGES, events=events))

    assert len(vendor.requests) == 1
    assert events[0].payload.response == f"Error: Google API error ({status}): invalid argument"


def test_connection_errors_are_retried():
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        raise httpx.ConnectError("connection refused", request=request)

    provider = _provider(handler, max_retries=1)

    with pytest.raises(ProviderConnectionError):
        asyncio.run(provider.generate_content(MESSAGES))

    assert calls["count"] == 2
