"""
Request context handed to `Agent.handle`.

Bundles the conversation, metadata, persona and free-text context with the
request's event sink and value store, plus LLM and HTTP facades that attach
persona, context and events to every call automatically.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import httpx

from .events import EventSink
from .http_client import HTTPClient, HTTPRequestOptions
from .llm import LLM
from .models import Message, Metadata, Persona
from .providers.base import MessageLike
from .schemas import SchemaLike


@dataclass(frozen=True)
class RequestScope:
    """Per-request data pinned onto every call made through the contextual facades."""

    persona: Optional[Persona] = None
    context: Optional[str] = None
    events: EventSink = field(default_factory=EventSink)


class ContextualLLM:
    """`LLM` with persona, context and event sink taken from a `RequestScope`."""

    def __init__(self, llm: LLM, scope: RequestScope) -> None:
        self._llm = llm
        self.scope = scope

    async def generate_content(
        self,
        messages: Sequence[MessageLike],
        system_instruction: Optional[str] = None,
        include_persona: Optional[bool] = None,
        include_context: Optional[bool] = None,
        parameters: Optional[Mapping[str, Any]] = None,
        timeout_ms: Optional[int] = None,
    ) -> str:
        return await self._llm.generate_content(
            messages,
            system_instruction,
            include_persona,
            include_context,
            persona=self.scope.persona,
            context=self.scope.context,
            events=self.scope.events,
            parameters=parameters,
            timeout_ms=timeout_ms,
        )

    async def generate_structured_content(
        self,
        messages: Sequence[MessageLike],
        schema: SchemaLike,
        system_instruction: Optional[str] = None,
        include_persona: Optional[bool] = None,
        include_context: Optional[bool] = None,
        parameters: Optional[Mapping[str, Any]] = None,
        timeout_ms: Optional[int] = None,
    ) -> Any:
        return await self._llm.generate_structured_content(
            messages,
            schema,
            system_instruction,
            include_persona,
            include_context,
            persona=self.scope.persona,
            context=self.scope.context,
            events=self.scope.events,
            parameters=parameters,
            timeout_ms=timeout_ms,
        )

    async def generate_content_with_candidates(
        self,
        messages: Sequence[MessageLike],
        candidate_count: int,
        system_instruction: Optional[str] = None,
        include_persona: Optional[bool] = None,
        include_context: Optional[bool] = None,
        parameters: Optional[Mapping[str, Any]] = None,
        timeout_ms: Optional[int] = None,
    ) -> List[str]:
        return await self._llm.generate_content_with_candidates(
            messages,
            candidate_count,
            system_instruction,
            include_persona,
            include_context,
            persona=self.scope.persona,
            context=self.scope.context,
            events=self.scope.events,
            parameters=parameters,
            timeout_ms=timeout_ms,
        )

    async def generate_structured_content_with_candidates(
        self,
        messages: Sequence[MessageLike],
        candidate_count: int,
        schema: SchemaLike,
        system_instruction: Optional[str] = None,
        include_persona: Optional[bool] = None,
        include_context: Optional[bool] = None,
        parameters: Optional[Mapping[str, Any]] = None,
        timeout_ms: Optional[int] = None,
        strict_candidates: bool = False,
    ) -> List[Any]:
        return await self._llm.generate_structured_content_with_candidates(
            messages,
            candidate_count,
            schema,
            system_instruction,
            include_persona,
            include_context,
            persona=self.scope.persona,
            context=self.scope.context,
            events=self.scope.events,
            parameters=parameters,
            timeout_ms=timeout_ms,
            strict_candidates=strict_candidates,
        )


class ContextualHTTPClient:
    """`HTTPClient` that records every call into the scope's event sink."""

    def __init__(self, http: HTTPClient, scope: RequestScope) -> None:
        self._http = http
        self.scope = scope

    async def get(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        options: Optional[HTTPRequestOptions] = None,
    ) -> httpx.Response:
        return await self._http.get(url, headers, self.scope.events, options)

    async def post(
        self,
        url: str,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        options: Optional[HTTPRequestOptions] = None,
    ) -> httpx.Response:
        return await self._http.post(url, body, headers, self.scope.events, options)

    async def put(
        self,
        url: str,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        options: Optional[HTTPRequestOptions] = None,
    ) -> httpx.Response:
        return await self._http.put(url, body, headers, self.scope.events, options)

    async def patch(
        self,
        url: str,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        options: Optional[HTTPRequestOptions] = None,
    ) -> httpx.Response:
        return await self._http.patch(url, body, headers, self.scope.events, options)

    async def delete(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        options: Optional[HTTPRequestOptions] = None,
    ) -> httpx.Response:
        return await self._http.delete(url, headers, self.scope.events, options)


class Context:
    """Everything business logic needs to handle one request."""

    def __init__(
        self,
        metadata: Metadata,
        messages: List[Message],
        store_value: Callable[[str, Any], None],
        llm: LLM,
        http: HTTPClient,
        persona: Optional[Persona] = None,
        context: Optional[str] = None,
        events: Optional[EventSink] = None,
    ) -> None:
        self.metadata = metadata
        self.messages = messages
        self.store_value = store_value
        self.persona = persona
        self.context = context
        self.events = events if events is not None else EventSink()

        scope = RequestScope(persona=persona, context=context, events=self.events)
        self.llm = ContextualLLM(llm, scope)
        self.http = ContextualHTTPClient(http, scope)
