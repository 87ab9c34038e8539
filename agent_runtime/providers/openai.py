from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx

from ..domain import OpenAIProviderConfig
from ..errors import NoContentError, ProviderRefusalError
from ..models import Message
from ..schemas import ResponseSchema
from .base import BaseLLMProvider

OPENAI_API_URL = "https://api.openai.com/v1"


class OpenAIProvider(BaseLLMProvider):
    """OpenAI Chat Completions provider (also works with OpenAI-compatible gateways via `base_url`)."""

    provider_name = "OpenAI"
    default_base_url = OPENAI_API_URL
    # Mirrors the retry policy of OpenAI's official clients.
    retryable_status_codes = frozenset({408, 409, 429})

    def __init__(
        self,
        config: OpenAIProviderConfig,
        include_persona_default: bool = True,
        include_context_default: bool = True,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.reasoning_effort = config.reasoning_effort
        super().__init__(
            config,
            include_persona_default,
            include_context_default,
            transport=transport,
            logger=logger,
        )

    def _auth_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def prepare_messages(self, messages: List[Message], system_instruction: str) -> List[Dict[str, str]]:
        openai_messages: List[Dict[str, str]] = []
        if system_instruction:
            openai_messages.append({"role": "system", "content": system_instruction})
        for message in messages:
            openai_messages.append(
                {
                    "role": "user" if message.author == "User" else "assistant",
                    "content": message.content,
                }
            )
        return openai_messages

    def _build_request(
        self,
        messages: List[Message],
        system_instruction: str,
        *,
        candidate_count: Optional[int] = None,
        schema: Optional[ResponseSchema] = None,
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> Tuple[str, Dict[str, Any]]:
        body: Dict[str, Any] = {
            "model": self.model,
            "messages": self.prepare_messages(messages, system_instruction),
        }
        if schema is not None:
            body["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "response", "schema": schema.json_schema},
            }
        if candidate_count is not None:
            body["n"] = candidate_count
        if self.reasoning_effort:
            body["reasoning_effort"] = self.reasoning_effort
        if parameters:
            body.update(parameters)
        return "/chat/completions", body

    def _extract_text(self, data: Dict[str, Any]) -> str:
        choices = data.get("choices") or []
        message = (choices[0].get("message") or {}) if choices else {}
        content = message.get("content")
        if not content:
            # Reasoning models may refuse instead of answering.
            if message.get("refusal"):
                raise ProviderRefusalError(f"OpenAI refused to respond: {message['refusal']}")
            first = choices[0] if choices else None
            raise NoContentError(f"No content received from OpenAI. Response: {json.dumps(first)}")
        return content

    def _extract_candidates(self, data: Dict[str, Any]) -> List[str]:
        results: List[str] = []
        for choice in data.get("choices") or []:
            message = choice.get("message") or {}
            content = message.get("content")
            if content:
                results.append(content)
            elif message.get("refusal"):
                self.logger.warning("Candidate refused: %s", message["refusal"])
        return results
