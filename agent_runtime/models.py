"""
Wire protocol models for the agent runtime.

Defines the inbound request (metadata, messages, persona, context), the
outbound command envelope and the call events attached to it. Field names are
snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .errors import RequestValidationError


class WireModel(BaseModel):
    """Base for wire models: camelCase aliases, unknown fields ignored."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Metadata(WireModel):
    request_id: str
    chatbot_id: str
    conversation_id: str
    interaction_id: Optional[str] = None


class Message(WireModel):
    """A single conversation turn. Read-only once received."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore", frozen=True)

    author: Literal["User", "Chatbot"]
    content: str
    timestamp: str

    @field_validator("timestamp")
    @classmethod
    def _check_iso8601(cls, value: str) -> str:
        # fromisoformat() only accepts a trailing "Z" from Python 3.11 on.
        candidate = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            datetime.fromisoformat(candidate)
        except ValueError as exc:
            raise ValueError("timestamp must be an ISO-8601 datetime") from exc
        return value


class Persona(WireModel):
    name: Optional[str] = None
    business_context: Optional[str] = None
    tone_of_voice: Optional[str] = None


class IncomingRequest(WireModel):
    """Parsed body of POST /."""

    metadata: Metadata
    messages: List[Message]
    context: Optional[str] = None
    persona: Optional[Persona] = None


class SendMessagePayload(WireModel):
    message: str


class SendMessageCommand(WireModel):
    type: Literal["send_message"] = "send_message"
    payload: SendMessagePayload


class GoToNextBlockPayload(WireModel):
    next_block_reference_key: str
    message: Optional[str] = None


class GoToNextBlockCommand(WireModel):
    type: Literal["go_to_next_block"] = "go_to_next_block"
    payload: GoToNextBlockPayload


Command = Union[SendMessageCommand, GoToNextBlockCommand]


class LLMCallPayload(WireModel):
    prompt: str
    response: str
    model: str
    duration_in_millis: int


class LLMCallEvent(WireModel):
    type: Literal["llm_call"] = "llm_call"
    payload: LLMCallPayload


class APICallPayload(WireModel):
    url: str
    request_method: str
    request_headers: Dict[str, str] = Field(default_factory=dict)
    request_body: Optional[str] = None
    response_headers: Dict[str, str] = Field(default_factory=dict)
    response_status_code: int
    response_body: Optional[str] = None
    duration_in_millis: int


class APICallEvent(WireModel):
    type: Literal["api_call"] = "api_call"
    payload: APICallPayload


Event = Union[LLMCallEvent, APICallEvent]


class ExternalAgentResponse(WireModel):
    """Body returned to the orchestrator after a successful dispatch."""

    command: Command = Field(discriminator="type")
    values_to_save: Optional[Dict[str, Any]] = None
    events: Optional[List[Annotated[Event, Field(discriminator="type")]]] = None


def parse_incoming_request(data: Any) -> IncomingRequest:
    """
    Validate and parse an inbound payload.

    Raises RequestValidationError whose details list one `{path, message}`
    entry per offending field.
    """
    try:
        return IncomingRequest.model_validate(data)
    except ValidationError as exc:
        details = [{"path": list(err["loc"]), "message": err["msg"]} for err in exc.errors()]
        raise RequestValidationError("Invalid request format", details) from exc


def serialize_external_agent_response(response: ExternalAgentResponse) -> Dict[str, Any]:
    """Serialize a response to its wire shape (camelCase, absent fields omitted)."""
    return response.model_dump(by_alias=True, exclude_none=True, mode="json")
