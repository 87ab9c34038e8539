import asyncio
import json
import logging
from typing import Any, Dict

import httpx
import pytest

from agent_runtime import retry
from agent_runtime.domain import ContinueConversationResponse, OpenAIProviderConfig, TransferToBlockResponse
from agent_runtime.engine import AgentDispatcher, build_error_envelope, to_command
from agent_runtime.http_client import HTTPClient
from agent_runtime.llm import LLM


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    async def fake_sleep(_seconds: float) -> None:
        return None

    monkeypatch.setattr(retry, "_sleep", fake_sleep)


def _payload(**overrides) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "metadata": {"requestId": "req-42", "chatbotId": "bot", "conversationId": "conv-1"},
        "messages": [{"author": "User", "content": "Verify my id", "timestamp": "2024-05-01T10:00:00Z"}],
    }
    body.update(overrides)
    return body


def _dispatcher(handler, vendor=None) -> AgentDispatcher:
    transport = httpx.MockTransport(vendor or (lambda request: httpx.Response(200, json={})))
    llm = LLM(OpenAIProviderConfig(api_key="k", model="gpt-test"), transport=transport)
    return AgentDispatcher(handler, llm, HTTPClient(transport=transport))


def test_continue_conversation_without_extras():
    async def handler(context):
        return ContinueConversationResponse(message=f"Got {len(context.messages)} message(s)")

    result = asyncio.run(_dispatcher(handler).dispatch(_payload()))

    assert result.status_code == 200
    assert result.body == {"command": {"type": "send_message", "payload": {"message": "Got 1 message(s)"}}}


def test_empty_conversation_is_handled():
    async def handler(context):
        return ContinueConversationResponse(message="Hello! How can I help?")

    result = asyncio.run(_dispatcher(handler).dispatch(json.dumps(_payload(messages=[])).encode("utf-8")))

    assert result.status_code == 200
    assert result.body["command"]["payload"]["message"] == "Hello! How can I help?"


def test_transfer_with_values_and_events():
    def vendor(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": [{"message": {"content": '{"valid": true}'}}]})

    async def handler(context):
        check = await context.llm.generate_structured_content(
            context.messages,
            {"type": "object", "properties": {"valid": {"type": "boolean"}}, "required": ["valid"]},
            "Is the document valid?",
        )
        context.store_value("documentValid", check["valid"])
        return TransferToBlockResponse(next_block="verified", message="Thanks!")

    result = asyncio.run(_dispatcher(handler, vendor).dispatch(_payload()))

    assert result.status_code == 200
    assert result.body["command"] == {
        "type": "go_to_next_block",
        "payload": {"nextBlockReferenceKey": "verified", "message": "Thanks!"},
    }
    assert result.body["valuesToSave"] == {"documentValid": True}
    assert len(result.body["events"]) == 1
    event = result.body["events"][0]
    assert event["type"] == "llm_call"
    assert event["payload"]["model"] == "gpt-test"
    assert json.loads(event["payload"]["response"]) == {"valid": True}


def test_malformed_json_is_400():
    async def handler(context):  # pragma: no cover - never reached
        raise AssertionError("handler must not run")

    result = asyncio.run(_dispatcher(handler).dispatch(b"{not json"))

    assert result.status_code == 400
    assert result.body["error"]["code"] == "MALFORMED_REQUEST"
    assert isinstance(result.body["meta"]["request_id"], str)


def test_schema_violation_is_400_with_details():
    async def handler(context):  # pragma: no cover - never reached
        raise AssertionError("handler must not run")

    bad = _payload(messages=[{"author": "Robot", "content": "x", "timestamp": "2024-05-01T10:00:00Z"}])
    result = asyncio.run(_dispatcher(handler).dispatch(bad))

    assert result.status_code == 400
    error = result.body["error"]
    assert error["code"] == "INVALID_REQUEST"
    assert error["message"] == "Invalid request format"
    assert any(detail["path"][:3] == ["messages", 0, "author"] for detail in error["details"])


def test_handler_failure_is_generic_500(caplog):
    async def handler(context):
        raise RuntimeError("database password is hunter2")

    with caplog.at_level(logging.ERROR, logger="agent_runtime"):
        result = asyncio.run(_dispatcher(handler).dispatch(_payload()))

    assert result.status_code == 500
    assert result.body["error"]["code"] == "INTERNAL_ERROR"
    assert result.body["error"]["message"] == "Internal server error"
    assert "hunter2" not in json.dumps(result.body)
    assert result.body["meta"]["request_id"] == "req-42"
    assert any(record.exc_info for record in caplog.records)


def test_exhausted_llm_retries_surface_as_500_after_one_event():
    calls = {"count": 0}
    recorded = {}

    def vendor(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(500, json={"error": {"message": "overloaded"}})

    async def handler(context):
        try:
            return ContinueConversationResponse(message=await context.llm.generate_content(context.messages))
        finally:
            recorded["events"] = context.events.snapshot()

    result = asyncio.run(_dispatcher(handler, vendor).dispatch(_payload()))

    assert result.status_code == 500
    assert calls["count"] == 4
    assert len(recorded["events"]) == 1
    assert recorded["events"][0].payload.response.startswith("Error: OpenAI API error (500)")


def test_unsupported_handler_result_is_500():
    async def handler(context):
        return "just a string"

    result = asyncio.run(_dispatcher(handler).dispatch(_payload()))

    assert result.status_code == 500


def test_unserializable_stored_value_is_500_envelope():
    class Ticket:
        pass

    async def handler(context):
        context.store_value("ticket", Ticket())
        return ContinueConversationResponse(message="ok")

    result = asyncio.run(_dispatcher(handler).dispatch(_payload()))

    assert result.status_code == 500
    assert result.body["error"]["code"] == "INTERNAL_ERROR"
    assert result.body["error"]["message"] == "Internal server error"
    assert result.body["meta"]["request_id"] == "req-42"


def test_invalid_request_details_come_from_parser():
    async def handler(context):  # pragma: no cover - never reached
        raise AssertionError("handler must not run")

    result = asyncio.run(_dispatcher(handler).dispatch({"messages": []}))

    assert result.status_code == 400
    assert {"path": ["metadata"], "message": "Field required"} in result.body["error"]["details"]


def test_to_command_rejects_unknown_results():
    with pytest.raises(TypeError):
        to_command("nope")  # type: ignore[arg-type]


def test_build_error_envelope_shape():
    status, body = build_error_envelope(request_id="r", status_code=401, code="UNAUTHORIZED", message="no")
    assert status == 401
    assert body == {"error": {"code": "UNAUTHORIZED", "message": "no", "details": None}, "meta": {"request_id": "r"}}
