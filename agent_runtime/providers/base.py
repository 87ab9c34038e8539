"""
Base LLM provider.

Every public operation follows the same pipeline:

1. build the system instruction (persona, explicit instruction, context),
2. translate messages into the vendor's turn format,
3. POST to the vendor API through `RetryingInvoker`,
4. parse (and for structured calls validate) the response,
5. append exactly one `LLMCallEvent` to the request's event sink, whether the
   logical call succeeded or failed, then return or re-raise.

Concrete providers only describe the request body and how to read the
response; the HTTP client is created once per provider and shared by every
request handled by the process.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import httpx

from ..domain import GoogleProviderConfig, OpenAIProviderConfig
from ..errors import (
    NoContentError,
    NoValidCandidatesError,
    ProviderConnectionError,
    ProviderError,
    ProviderHTTPError,
    ProviderTimeoutError,
    RetryableProviderError,
    SchemaValidationError,
    TerminalProviderError,
)
from ..events import EventSink
from ..logging_setup import get_logger
from ..models import LLMCallEvent, LLMCallPayload, Message, Persona
from ..prompt_builder import SystemInstructionBuilder
from ..retry import RetryingInvoker, is_retryable_error
from ..schemas import ResponseSchema, SchemaLike
from ..timing import CallTimer

MessageLike = Union[Message, Mapping[str, Any]]


def coerce_messages(messages: Sequence[MessageLike]) -> List[Message]:
    return [m if isinstance(m, Message) else Message.model_validate(m) for m in messages]


class BaseLLMProvider:
    """Abstract provider. Subclasses implement the `_build_request` / `_extract_*` hooks."""

    provider_name = "LLM"
    default_base_url = ""
    # Statuses at or above 500 are always retryable.
    retryable_status_codes = frozenset({429})

    def __init__(
        self,
        config: Union[OpenAIProviderConfig, GoogleProviderConfig],
        include_persona_default: bool = True,
        include_context_default: bool = True,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config
        self.model = config.model
        self.api_key = config.api_key
        self.logger = logger or get_logger(type(self).__name__)
        self.instructions = SystemInstructionBuilder(include_persona_default, include_context_default)
        self._invoker = RetryingInvoker(self.logger)
        self._timer = CallTimer()
        self._client = httpx.AsyncClient(
            base_url=config.base_url or self.default_base_url,
            headers=self._auth_headers(),
            timeout=config.timeout_ms / 1000.0,
            transport=transport,
        )

    # -- hooks -----------------------------------------------------------------

    def _auth_headers(self) -> Dict[str, str]:  # pragma: no cover - interface only
        raise NotImplementedError

    def _build_request(
        self,
        messages: List[Message],
        system_instruction: str,
        *,
        candidate_count: Optional[int] = None,
        schema: Optional[ResponseSchema] = None,
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> Tuple[str, Dict[str, Any]]:  # pragma: no cover - interface only
        raise NotImplementedError

    def _extract_text(self, data: Dict[str, Any]) -> str:  # pragma: no cover - interface only
        """Text of the first candidate for single-result calls."""
        raise NotImplementedError

    def _extract_candidates(self, data: Dict[str, Any]) -> List[str]:  # pragma: no cover - interface only
        """Non-empty candidate texts in vendor order."""
        raise NotImplementedError

    # -- public operations -----------------------------------------------------

    def build_system_instruction(
        self,
        system_instruction: Optional[str] = None,
        include_persona: Optional[bool] = None,
        include_context: Optional[bool] = None,
        persona: Optional[Persona] = None,
        context: Optional[str] = None,
    ) -> str:
        return self.instructions.build(system_instruction, include_persona, include_context, persona, context)

    async def generate_content(
        self,
        messages: Sequence[MessageLike],
        system_instruction: Optional[str] = None,
        include_persona: Optional[bool] = None,
        include_context: Optional[bool] = None,
        persona: Optional[Persona] = None,
        context: Optional[str] = None,
        events: Optional[EventSink] = None,
        parameters: Optional[Mapping[str, Any]] = None,
        timeout_ms: Optional[int] = None,
    ) -> str:
        history = coerce_messages(messages)
        system_text = self.build_system_instruction(system_instruction, include_persona, include_context, persona, context)
        path, body = self._build_request(history, system_text, parameters=parameters)

        async def call() -> str:
            data = await self._send(path, body, timeout_ms)
            return self._extract_text(data)

        return await self._tracked(call, history, system_text, events)

    async def generate_structured_content(
        self,
        messages: Sequence[MessageLike],
        schema: SchemaLike,
        system_instruction: Optional[str] = None,
        include_persona: Optional[bool] = None,
        include_context: Optional[bool] = None,
        persona: Optional[Persona] = None,
        context: Optional[str] = None,
        events: Optional[EventSink] = None,
        parameters: Optional[Mapping[str, Any]] = None,
        timeout_ms: Optional[int] = None,
    ) -> Any:
        history = coerce_messages(messages)
        response_schema = ResponseSchema(schema)
        system_text = self.build_system_instruction(system_instruction, include_persona, include_context, persona, context)
        path, body = self._build_request(history, system_text, schema=response_schema, parameters=parameters)

        async def call() -> Any:
            data = await self._send(path, body, timeout_ms)
            return response_schema.parse_text(self._extract_text(data))

        return await self._tracked(call, history, system_text, events, response_schema)

    async def generate_content_with_candidates(
        self,
        messages: Sequence[MessageLike],
        candidate_count: int,
        system_instruction: Optional[str] = None,
        include_persona: Optional[bool] = None,
        include_context: Optional[bool] = None,
        persona: Optional[Persona] = None,
        context: Optional[str] = None,
        events: Optional[EventSink] = None,
        parameters: Optional[Mapping[str, Any]] = None,
        timeout_ms: Optional[int] = None,
    ) -> List[str]:
        _check_candidate_count(candidate_count)
        history = coerce_messages(messages)
        system_text = self.build_system_instruction(system_instruction, include_persona, include_context, persona, context)
        path, body = self._build_request(history, system_text, candidate_count=candidate_count, parameters=parameters)

        async def call() -> List[str]:
            data = await self._send(path, body, timeout_ms)
            texts = self._extract_candidates(data)
            if not texts:
                raise NoContentError(f"No content received from {self.provider_name}")
            return texts

        return await self._tracked(call, history, system_text, events)

    async def generate_structured_content_with_candidates(
        self,
        messages: Sequence[MessageLike],
        candidate_count: int,
        schema: SchemaLike,
        system_instruction: Optional[str] = None,
        include_persona: Optional[bool] = None,
        include_context: Optional[bool] = None,
        persona: Optional[Persona] = None,
        context: Optional[str] = None,
        events: Optional[EventSink] = None,
        parameters: Optional[Mapping[str, Any]] = None,
        timeout_ms: Optional[int] = None,
        strict_candidates: bool = False,
    ) -> List[Any]:
        """
        Generate several structured candidates.

        Candidates that fail schema validation are dropped with a warning
        unless `strict_candidates` is set, in which case the first invalid
        candidate fails the whole call.
        """
        _check_candidate_count(candidate_count)
        history = coerce_messages(messages)
        response_schema = ResponseSchema(schema)
        system_text = self.build_system_instruction(system_instruction, include_persona, include_context, persona, context)
        path, body = self._build_request(
            history,
            system_text,
            candidate_count=candidate_count,
            schema=response_schema,
            parameters=parameters,
        )

        async def call() -> List[Any]:
            data = await self._send(path, body, timeout_ms)
            texts = self._extract_candidates(data)
            if not texts:
                raise NoContentError(f"No content received from {self.provider_name}")

            results: List[Any] = []
            for index, text in enumerate(texts):
                try:
                    results.append(response_schema.parse_text(text))
                except SchemaValidationError as exc:
                    if strict_candidates:
                        raise
                    self.logger.warning("Skipping candidate %d that failed validation: %s", index, exc)
            if not results:
                raise NoValidCandidatesError(
                    f"No valid candidates received from {self.provider_name}: "
                    f"all {len(texts)} candidates failed schema validation"
                )
            return results

        return await self._tracked(call, history, system_text, events, response_schema)

    async def aclose(self) -> None:
        await self._client.aclose()

    # -- shared machinery ------------------------------------------------------

    async def _send(self, path: str, body: Dict[str, Any], timeout_ms: Optional[int]) -> Dict[str, Any]:
        return await self._invoker.invoke(
            lambda: self._post(path, body, timeout_ms),
            is_retryable_error,
            max_retries=self.config.max_retries,
            base_delay_ms=self.config.retry_base_delay_ms,
            description=f"{self.provider_name} LLM request",
        )

    async def _post(self, path: str, body: Dict[str, Any], timeout_ms: Optional[int]) -> Dict[str, Any]:
        try:
            response = await self._client.post(
                path,
                json=body,
                timeout=timeout_ms / 1000.0 if timeout_ms is not None else httpx.USE_CLIENT_DEFAULT,
            )
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError(f"{self.provider_name} request timed out") from exc
        except httpx.TransportError as exc:
            raise ProviderConnectionError(f"{self.provider_name} request failed: {exc}") from exc

        if not response.is_success:
            raise self._status_error(response)

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(f"{self.provider_name} returned a non-JSON response") from exc
        if not isinstance(data, dict):
            raise ProviderError(f"{self.provider_name} returned an unexpected response shape")
        return data

    def is_retryable_status(self, status_code: int) -> bool:
        return status_code >= 500 or status_code in self.retryable_status_codes

    def _status_error(self, response: httpx.Response) -> ProviderHTTPError:
        status = response.status_code
        message = f"{self.provider_name} API error ({status}): {_vendor_message(response)}"
        error_cls = RetryableProviderError if self.is_retryable_status(status) else TerminalProviderError
        return error_cls(status, message, body=response.text)

    async def _tracked(
        self,
        call: Callable[[], Awaitable[Any]],
        messages: List[Message],
        system_instruction: str,
        events: Optional[EventSink],
        response_schema: Optional[ResponseSchema] = None,
    ) -> Any:
        self.logger.debug("Making %s LLM request with model %s", self.provider_name, self.model)
        outcome = await self._timer.measure(call)

        if outcome.ok:
            self.logger.debug(
                "%s LLM request completed in %dms with model %s",
                self.provider_name,
                outcome.duration_ms,
                self.model,
            )
            response_text = _serialize_result(outcome.result)
        else:
            self.logger.error(
                "%s LLM request failed after %dms: %s",
                self.provider_name,
                outcome.duration_ms,
                outcome.error,
            )
            response_text = f"Error: {outcome.error}"

        if events is not None:
            events.append(
                self._llm_call_event(messages, system_instruction, response_text, outcome.duration_ms, response_schema)
            )

        if outcome.error is not None:
            raise outcome.error
        return outcome.result

    def _llm_call_event(
        self,
        messages: List[Message],
        system_instruction: str,
        response: str,
        duration_ms: int,
        response_schema: Optional[ResponseSchema] = None,
    ) -> LLMCallEvent:
        prompt: Dict[str, Any] = {
            "messages": [m.model_dump(by_alias=True, mode="json") for m in messages],
            "system_instruction": system_instruction,
        }
        if response_schema is not None:
            prompt["response_schema"] = response_schema.json_schema

        return LLMCallEvent(
            payload=LLMCallPayload(
                prompt=json.dumps(prompt, indent=2),
                response=response,
                model=self.model,
                duration_in_millis=duration_ms,
            )
        )


def _check_candidate_count(candidate_count: int) -> None:
    if candidate_count < 1:
        raise ValueError("candidate_count must be at least 1")


def _serialize_result(result: Any) -> str:
    if isinstance(result, str):
        return result
    if isinstance(result, list):
        return json.dumps([ResponseSchema.dump(item) for item in result])
    return json.dumps(ResponseSchema.dump(result))


def _vendor_message(response: httpx.Response) -> str:
    """Best-effort extraction of `{"error": {"message": ...}}` from a vendor error body."""
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return response.text or response.reason_phrase
