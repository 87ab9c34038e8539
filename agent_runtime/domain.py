"""
Internal domain types: agent responses, LLM provider and auth configuration.

These are not part of the wire contract; `models.py` holds that.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, Union


@dataclass(frozen=True)
class ContinueConversationResponse:
    """Reply to the user and keep the conversation in this block."""

    message: str


@dataclass(frozen=True)
class TransferToBlockResponse:
    """Hand the conversation over to another workflow block."""

    next_block: str
    message: Optional[str] = None


AgentResponse = Union[ContinueConversationResponse, TransferToBlockResponse]


@dataclass(frozen=True)
class OpenAIProviderConfig:
    api_key: str
    model: str
    reasoning_effort: Optional[Literal["minimal", "low", "medium", "high"]] = None
    # Custom base URL, e.g. for proxies or OpenAI-compatible gateways.
    base_url: Optional[str] = None
    timeout_ms: int = 60000
    max_retries: int = 3
    retry_base_delay_ms: int = 1000


@dataclass(frozen=True)
class GoogleProviderConfig:
    api_key: str
    model: str
    thinking_budget: Optional[int] = None
    base_url: Optional[str] = None
    timeout_ms: int = 60000
    max_retries: int = 3
    retry_base_delay_ms: int = 1000


LLMConfig = Union[OpenAIProviderConfig, GoogleProviderConfig]


@dataclass(frozen=True)
class APIKeyAuth:
    header_name: str
    api_key: str


@dataclass(frozen=True)
class BasicAuth:
    username: str
    password: str


@dataclass(frozen=True)
class BearerTokenAuth:
    token: str


AuthConfig = Union[APIKeyAuth, BasicAuth, BearerTokenAuth]
