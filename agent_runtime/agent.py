"""
Base class for external conversational agents.

Subclasses implement `handle(context)`; the base class wires the LLM facade,
the tracked HTTP client, the dispatcher and the FastAPI app.

Example:

    class EchoAgent(Agent):
        async def handle(self, context: Context) -> AgentResponse:
            reply = await context.llm.generate_content(context.messages, "Answer briefly.")
            return ContinueConversationResponse(message=reply)
"""

from __future__ import annotations

import abc
from typing import Optional

from .config import get_settings
from .context import Context
from .domain import AgentResponse, AuthConfig, LLMConfig
from .engine import AgentDispatcher
from .http_client import HTTPClient
from .llm import LLM
from .logging_setup import configure_logging, get_logger
from .main import create_app

DEFAULT_SERVER_PORT = 3000


class Agent(abc.ABC):
    def __init__(
        self,
        llm_config: Optional[LLMConfig] = None,
        *,
        http_timeout_ms: Optional[int] = None,
        auth_config: Optional[AuthConfig] = None,
        include_persona_by_default: bool = True,
        include_context_by_default: bool = True,
        include_http_headers_by_default: bool = True,
        include_request_bodies_in_events_by_default: bool = True,
        log_level: Optional[str] = None,
        port: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        configure_logging(log_level or settings.log_level)
        self.logger = get_logger(type(self).__name__)

        self.llm_config = llm_config
        self.auth_config = auth_config
        self.port = port or settings.port or DEFAULT_SERVER_PORT

        self.llm = LLM(
            llm_config,
            include_persona_by_default,
            include_context_by_default,
        )
        self.http_client = HTTPClient(
            http_timeout_ms if http_timeout_ms is not None else settings.http_timeout_ms,
            include_http_headers_by_default,
            include_request_bodies_in_events_by_default,
        )
        self.dispatcher = AgentDispatcher(self.handle, self.llm, self.http_client)
        self.app = create_app(self)

        self.logger.info("Agent initialized")

    @abc.abstractmethod
    async def handle(self, context: Context) -> AgentResponse:
        """Process one request and decide how the conversation continues."""

    def listen(self, port: Optional[int] = None, host: str = "0.0.0.0") -> None:
        """Serve the agent with uvicorn (blocking)."""
        import uvicorn

        server_port = port or self.port
        self.logger.info("Agent listening on port %d", server_port)
        uvicorn.run(self.app, host=host, port=server_port)

    async def aclose(self) -> None:
        await self.llm.aclose()
        await self.http_client.aclose()
