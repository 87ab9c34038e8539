"""
Error taxonomy for the agent runtime.

Provider-layer errors are always recorded as an LLM call event before they
propagate to business logic. Whether a failure is retried is decided by the
provider's classifier (see `retry.is_retryable_error`).
"""

from __future__ import annotations

from typing import Any, Optional


class AgentRuntimeError(Exception):
    """Base class for all runtime errors."""


class RequestValidationError(AgentRuntimeError):
    """Raised when an inbound payload does not match the request schema."""

    def __init__(self, message: str, details: Any = None):
        self.message = message
        self.details = details
        super().__init__(message)


class ProviderError(AgentRuntimeError):
    """Base class for failures raised by the LLM provider layer."""


class ProviderNotConfiguredError(ProviderError):
    """The LLM facade was used without a provider configuration."""


class ProviderHTTPError(ProviderError):
    """Vendor API answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str, body: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class TerminalProviderError(ProviderHTTPError):
    """Non-retryable vendor failure (bad request, auth, not found)."""


class RetryableProviderError(ProviderHTTPError):
    """Rate limiting or server-side vendor failure."""


class ProviderTimeoutError(ProviderError):
    """Outbound provider call exceeded its deadline."""


class ProviderConnectionError(ProviderError):
    """Network-level failure before a vendor response was received."""


class ProviderRefusalError(ProviderError):
    """The model explicitly refused to answer."""


class SchemaValidationError(ProviderError):
    """Structured output did not conform to the requested schema."""


class NoContentError(ProviderError):
    """The provider returned no usable content."""


class NoValidCandidatesError(ProviderError):
    """Every candidate of a multi-candidate structured call failed validation."""
