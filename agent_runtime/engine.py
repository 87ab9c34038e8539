from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from .context import Context
from .domain import AgentResponse, ContinueConversationResponse, TransferToBlockResponse
from .errors import RequestValidationError
from .events import EventSink
from .http_client import HTTPClient
from .llm import LLM
from .logging_setup import get_logger
from .models import (
    Command,
    ExternalAgentResponse,
    GoToNextBlockCommand,
    GoToNextBlockPayload,
    SendMessageCommand,
    SendMessagePayload,
    parse_incoming_request,
    serialize_external_agent_response,
)

Handler = Callable[[Context], Awaitable[AgentResponse]]


class ErrorEnvelope(Exception):
    """
    Custom exception used internally to simplify control flow.

    `AgentDispatcher.dispatch` converts this into the standardized error envelope.
    """

    def __init__(self, status_code: int, code: str, message: str, details: Any = None):
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details
        super().__init__(message)


@dataclass
class DispatchResult:
    status_code: int
    body: Dict[str, Any]


def new_request_id() -> str:
    return str(uuid.uuid4())


def build_error_envelope(
    *,
    request_id: str,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> Tuple[int, Dict[str, Any]]:
    body = {
        "error": {
            "code": code,
            "message": message,
            "details": details,
        },
        "meta": {"request_id": request_id},
    }
    return status_code, body


def to_command(result: AgentResponse) -> Command:
    """Translate the agent's response into the orchestrator command."""
    if isinstance(result, ContinueConversationResponse):
        return SendMessageCommand(payload=SendMessagePayload(message=result.message))
    if isinstance(result, TransferToBlockResponse):
        return GoToNextBlockCommand(
            payload=GoToNextBlockPayload(next_block_reference_key=result.next_block, message=result.message)
        )
    raise TypeError(f"Agent returned unsupported response type: {type(result).__name__}")


def build_external_response(
    result: AgentResponse,
    values_to_save: Dict[str, Any],
    events: EventSink,
) -> ExternalAgentResponse:
    return ExternalAgentResponse(
        command=to_command(result),
        values_to_save=dict(values_to_save) if values_to_save else None,
        events=events.snapshot() if events else None,
    )


def _decode_payload(raw_payload: Any) -> Any:
    if isinstance(raw_payload, (bytes, bytearray)):
        try:
            raw_payload = raw_payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ErrorEnvelope(400, "MALFORMED_REQUEST", "Request body must be UTF-8 encoded JSON") from exc
    if isinstance(raw_payload, str):
        try:
            return json.loads(raw_payload)
        except json.JSONDecodeError as exc:
            raise ErrorEnvelope(
                status_code=400,
                code="MALFORMED_REQUEST",
                message="Request body must be valid JSON",
                details={"message": str(exc)},
            ) from exc
    return raw_payload


class AgentDispatcher:
    """
    Runs one inbound request end-to-end.

    Parses the payload, builds a fresh `Context` (empty event sink, empty
    value store), awaits the agent's handler and turns its response into the
    wire shape. Business logic is never retried here; retries live in the
    provider layer.
    """

    def __init__(
        self,
        handler: Handler,
        llm: LLM,
        http_client: HTTPClient,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.handler = handler
        self.llm = llm
        self.http_client = http_client
        self.logger = logger or get_logger("AgentDispatcher")

    async def dispatch(self, raw_payload: Any, path: str = "/") -> DispatchResult:
        start = time.monotonic()
        request_id: Optional[str] = None

        try:
            # 1) Parse and validate the inbound request.
            payload = _decode_payload(raw_payload)
            try:
                request = parse_incoming_request(payload)
            except RequestValidationError as exc:
                raise ErrorEnvelope(
                    status_code=400,
                    code="INVALID_REQUEST",
                    message=exc.message,
                    details=exc.details,
                ) from exc

            request_id = request.metadata.request_id
            self.logger.info("Processing request request_id=%s path=%s", request_id, path)

            # 2) Fresh per-request state.
            value_storage: Dict[str, Any] = {}
            events = EventSink()

            def store_value(key: str, value: Any) -> None:
                value_storage[key] = value

            context = Context(
                metadata=request.metadata,
                messages=list(request.messages),
                store_value=store_value,
                llm=self.llm,
                http=self.http_client,
                persona=request.persona,
                context=request.context,
                events=events,
            )

            # 3) Business logic and response encoding. Any failure here is an internal error.
            try:
                result = await self.handler(context)
                response = build_external_response(result, value_storage, events)
                body = serialize_external_agent_response(response)
            except Exception as exc:
                self.logger.exception(
                    "Error processing request request_id=%s path=%s duration_ms=%d",
                    request_id,
                    path,
                    (time.monotonic() - start) * 1000,
                )
                raise ErrorEnvelope(
                    status_code=500,
                    code="INTERNAL_ERROR",
                    message="Internal server error",
                ) from exc

            self.logger.info(
                "Request processed successfully request_id=%s duration_ms=%d events=%d",
                request_id,
                (time.monotonic() - start) * 1000,
                len(events),
            )
            return DispatchResult(status_code=200, body=body)

        except ErrorEnvelope as exc:
            if exc.status_code < 500:
                self.logger.warning(
                    "Invalid request format path=%s duration_ms=%d: %s",
                    path,
                    (time.monotonic() - start) * 1000,
                    exc.message,
                )
            status_code, body = build_error_envelope(
                request_id=request_id or new_request_id(),
                status_code=exc.status_code,
                code=exc.code,
                message=exc.message,
                details=exc.details,
            )
            return DispatchResult(status_code=status_code, body=body)
