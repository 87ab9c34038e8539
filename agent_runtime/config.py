import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

from .domain import AuthConfig, BearerTokenAuth, GoogleProviderConfig, LLMConfig, OpenAIProviderConfig

# Load .env from current directory so provider keys are set automatically.
load_dotenv()


class Settings(BaseModel):
    """Runtime configuration loaded from environment variables."""

    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3000
    http_timeout_ms: int = 10000

    llm_provider: Optional[str] = None
    google_api_key: Optional[str] = None
    google_model: str = "gemini-2.5-flash"
    google_thinking_budget: Optional[int] = None
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-5-mini"
    openai_base_url: Optional[str] = None
    openai_reasoning_effort: Optional[str] = None

    max_retries: int = 3
    retry_base_delay_ms: int = 1000

    agent_api_key: Optional[str] = None


@lru_cache(maxsize=1)
def _base_settings() -> Settings:
    """
    Defaults only.

    Environment values are *not* cached: `get_settings` re-reads them on every
    call so tests can mutate os.environ between calls.
    """
    return Settings()


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def get_settings() -> Settings:
    """Return Settings built from the *current* environment."""
    base = _base_settings()
    llm_provider = (os.getenv("LLM_PROVIDER") or "").strip().lower() or None

    return Settings(
        log_level=(os.getenv("LOG_LEVEL") or base.log_level).upper(),
        host=os.getenv("HOST") or base.host,
        port=_env_int("PORT", base.port),
        http_timeout_ms=_env_int("HTTP_TIMEOUT_MS", base.http_timeout_ms),
        llm_provider=llm_provider,
        google_api_key=os.getenv("GOOGLE_API_KEY") or None,
        google_model=os.getenv("GOOGLE_MODEL") or base.google_model,
        google_thinking_budget=_env_int("GOOGLE_THINKING_BUDGET", None),
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        openai_model=os.getenv("OPENAI_MODEL") or base.openai_model,
        openai_base_url=os.getenv("OPENAI_BASE_URL") or None,
        openai_reasoning_effort=os.getenv("OPENAI_REASONING_EFFORT") or None,
        max_retries=_env_int("AGENT_MAX_RETRIES", base.max_retries),
        retry_base_delay_ms=_env_int("AGENT_RETRY_BASE_DELAY_MS", base.retry_base_delay_ms),
        agent_api_key=os.getenv("AGENT_API_KEY") or None,
    )


def build_llm_config(settings: Optional[Settings] = None) -> Optional[LLMConfig]:
    """
    Choose the provider configuration.

    LLM_PROVIDER forces a provider; otherwise Google wins when its key is set,
    then OpenAI. Returns None when no usable key is present.
    """
    settings = settings or get_settings()
    provider = settings.llm_provider

    use_google = provider == "google" or (provider is None and settings.google_api_key)
    use_openai = provider == "openai" or (provider is None and not settings.google_api_key and settings.openai_api_key)

    if use_google and settings.google_api_key:
        return GoogleProviderConfig(
            api_key=settings.google_api_key,
            model=settings.google_model,
            thinking_budget=settings.google_thinking_budget,
            max_retries=settings.max_retries,
            retry_base_delay_ms=settings.retry_base_delay_ms,
        )
    if use_openai and settings.openai_api_key:
        return OpenAIProviderConfig(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            reasoning_effort=settings.openai_reasoning_effort,  # type: ignore[arg-type]
            base_url=settings.openai_base_url,
            max_retries=settings.max_retries,
            retry_base_delay_ms=settings.retry_base_delay_ms,
        )
    return None


def build_auth_config(settings: Optional[Settings] = None) -> Optional[AuthConfig]:
    """Bearer-token auth when AGENT_API_KEY is set; otherwise the endpoint is open."""
    settings = settings or get_settings()
    if settings.agent_api_key:
        return BearerTokenAuth(token=settings.agent_api_key)
    return None
