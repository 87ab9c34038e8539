"""
LLM facade.

Resolves the configured provider lazily, exactly once per facade, and forwards
the four generation operations to it. Without a configuration every call
fails with `ProviderNotConfiguredError` and no provider is ever built.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Mapping, Optional, Sequence

import httpx

from .domain import GoogleProviderConfig, LLMConfig, OpenAIProviderConfig
from .errors import ProviderNotConfiguredError
from .events import EventSink
from .logging_setup import get_logger
from .models import Persona
from .providers.base import BaseLLMProvider, MessageLike
from .schemas import SchemaLike


def build_provider(
    config: LLMConfig,
    include_persona_default: bool = True,
    include_context_default: bool = True,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> BaseLLMProvider:
    """Factory that chooses the concrete provider implementation."""
    if isinstance(config, OpenAIProviderConfig):
        from .providers.openai import OpenAIProvider

        return OpenAIProvider(config, include_persona_default, include_context_default, transport=transport)
    if isinstance(config, GoogleProviderConfig):
        from .providers.google import GoogleProvider

        return GoogleProvider(config, include_persona_default, include_context_default, transport=transport)
    raise ValueError(f"Unknown LLM provider config: {type(config).__name__}")


class LLM:
    def __init__(
        self,
        config: Optional[LLMConfig] = None,
        include_persona_default: bool = True,
        include_context_default: bool = True,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config
        self.include_persona_default = include_persona_default
        self.include_context_default = include_context_default
        self.logger = logger or get_logger("LLM")
        self._transport = transport
        self._provider: Optional[BaseLLMProvider] = None
        self._lock = asyncio.Lock()

    @property
    def is_configured(self) -> bool:
        return self.config is not None

    async def get_provider(self) -> BaseLLMProvider:
        if self.config is None:
            raise ProviderNotConfiguredError("LLM provider not configured")
        if self._provider is not None:
            return self._provider
        async with self._lock:
            if self._provider is None:
                self._provider = build_provider(
                    self.config,
                    self.include_persona_default,
                    self.include_context_default,
                    transport=self._transport,
                )
                self.logger.info("Initialized %s provider with model %s", self._provider.provider_name, self.config.model)
        return self._provider

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
        provider = await self.get_provider()
        return await provider.generate_content(
            messages,
            system_instruction,
            include_persona,
            include_context,
            persona,
            context,
            events,
            parameters,
            timeout_ms,
        )

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
        provider = await self.get_provider()
        return await provider.generate_structured_content(
            messages,
            schema,
            system_instruction,
            include_persona,
            include_context,
            persona,
            context,
            events,
            parameters,
            timeout_ms,
        )

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
        provider = await self.get_provider()
        return await provider.generate_content_with_candidates(
            messages,
            candidate_count,
            system_instruction,
            include_persona,
            include_context,
            persona,
            context,
            events,
            parameters,
            timeout_ms,
        )

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
        provider = await self.get_provider()
        return await provider.generate_structured_content_with_candidates(
            messages,
            candidate_count,
            schema,
            system_instruction,
            include_persona,
            include_context,
            persona,
            context,
            events,
            parameters,
            timeout_ms,
            strict_candidates,
        )

    async def aclose(self) -> None:
        if self._provider is not None:
            await self._provider.aclose()
