from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx

from ..domain import GoogleProviderConfig
from ..models import Message
from ..schemas import ResponseSchema
from .base import BaseLLMProvider

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta"


class GoogleProvider(BaseLLMProvider):
    """Google Gemini provider using the `generateContent` REST endpoint."""

    provider_name = "Google"
    default_base_url = GEMINI_API_URL

    def __init__(
        self,
        config: GoogleProviderConfig,
        include_persona_default: bool = True,
        include_context_default: bool = True,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.thinking_budget = config.thinking_budget
        super().__init__(
            config,
            include_persona_default,
            include_context_default,
            transport=transport,
            logger=logger,
        )

    def _auth_headers(self) -> Dict[str, str]:
        return {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json",
        }

    def prepare_history(self, messages: List[Message]) -> List[Dict[str, Any]]:
        return [
            {
                "role": "user" if message.author == "User" else "model",
                "parts": [{"text": message.content}],
            }
            for message in messages
        ]

    def _build_request(
        self,
        messages: List[Message],
        system_instruction: str,
        *,
        candidate_count: Optional[int] = None,
        schema: Optional[ResponseSchema] = None,
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> Tuple[str, Dict[str, Any]]:
        generation_config: Dict[str, Any] = {}
        if schema is not None:
            generation_config["responseMimeType"] = "application/json"
            generation_config["responseJsonSchema"] = schema.json_schema
        if candidate_count is not None:
            generation_config["candidateCount"] = candidate_count
        if self.thinking_budget is not None:
            generation_config["thinkingConfig"] = {"thinkingBudget": self.thinking_budget}
        if parameters:
            generation_config.update(parameters)

        body: Dict[str, Any] = {"contents": self.prepare_history(messages)}
        if system_instruction:
            body["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        if generation_config:
            body["generationConfig"] = generation_config
        return f"/models/{self.model}:generateContent", body

    @staticmethod
    def _candidate_text(candidate: Dict[str, Any]) -> str:
        parts = (candidate.get("content") or {}).get("parts") or []
        # Thought summaries are not part of the answer.
        return "".join(part.get("text", "") for part in parts if not part.get("thought"))

    def _extract_text(self, data: Dict[str, Any]) -> str:
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        return self._candidate_text(candidates[0])

    def _extract_candidates(self, data: Dict[str, Any]) -> List[str]:
        results: List[str] = []
        for candidate in data.get("candidates") or []:
            text = self._candidate_text(candidate)
            if text:
                results.append(text)
        return results
