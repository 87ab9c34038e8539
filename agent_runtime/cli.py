"""CLI entry point for the agent-runtime package."""

from __future__ import annotations

import importlib
import os
import platform
import shutil
import subprocess
import sys
from typing import Any

MIN_PYTHON = (3, 10)


def _print_setup_banner(provider: str, port: int) -> None:
    """Print LLM/auth environment guidance."""
    print()
    print("Agent Runtime — Setup")
    print("LLM provider: {}  |  Port: {}".format(provider, port))
    print()
    print("Create a .env file in this folder (or edit it if you already have one).")
    print("Set ONE of the provider keys below; Google wins when both are set")
    print("unless LLM_PROVIDER is given explicitly.")
    print()
    print("   GOOGLE_API_KEY=YOUR_KEY_HERE")
    print("   GOOGLE_MODEL=gemini-2.5-flash")
    print()
    print("   OPENAI_API_KEY=YOUR_KEY_HERE")
    print("   OPENAI_MODEL=gpt-5-mini")
    print()
    print("Optional:")
    print("   AGENT_API_KEY=...        require 'Authorization: Bearer ...' on POST /")
    print("   LOG_LEVEL=DEBUG          log every LLM and HTTP call")
    print("   HTTP_TIMEOUT_MS=10000    default timeout for tracked HTTP calls")
    print()
    print("Then run: agent-runtime serve your_module:create_agent")
    print()


def _python_version_str() -> str:
    return ".".join(str(part) for part in sys.version_info[:3])


def _ensure_supported_python() -> None:
    if sys.version_info < MIN_PYTHON:
        print(
            "Error: Python {} detected. agent-runtime requires Python {}.{}+.".format(
                _python_version_str(),
                MIN_PYTHON[0],
                MIN_PYTHON[1],
            ),
            file=sys.stderr,
        )
        sys.exit(2)


def _print_help() -> None:
    print("Agent Runtime CLI")
    print()
    print("Usage:")
    print("  agent-runtime serve <module:factory>   Build the agent and serve it")
    print("  agent-runtime setup                    Print setup/env guidance")
    print("  agent-runtime doctor                   Print install/environment diagnostics")
    print()


def _print_doctor() -> None:
    from .config import build_llm_config, get_settings

    settings = get_settings()
    llm_config = build_llm_config(settings)

    print("Agent Runtime Doctor")
    print()
    print(f"Platform: {platform.platform()}")
    print(f"Python:   {_python_version_str()}")
    print(f"Exe:      {sys.executable}")
    print(f"In venv:  {'yes' if sys.prefix != sys.base_prefix else 'no'}")
    print(f"PATH bin: {shutil.which('agent-runtime') or 'not found'}")

    try:
        pip_version = subprocess.check_output(
            [sys.executable, "-m", "pip", "--version"],
            text=True,
            stderr=subprocess.STDOUT,
        ).strip()
    except Exception as exc:  # pragma: no cover - diagnostics fallback
        pip_version = f"unavailable ({exc})"
    print(f"Pip:      {pip_version}")

    if llm_config is None:
        print("LLM:      not configured (set GOOGLE_API_KEY or OPENAI_API_KEY)")
    else:
        print(f"LLM:      {type(llm_config).__name__} model={llm_config.model}")
    print(f"Auth:     {'bearer token' if settings.agent_api_key else 'disabled'}")

    if sys.version_info < MIN_PYTHON:
        print(f"Issue: Python is below required minimum {MIN_PYTHON[0]}.{MIN_PYTHON[1]}.")


def load_factory(target: str) -> Any:
    """Resolve `package.module:attribute` to the object it names."""
    module_name, sep, attribute = target.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"Expected '<module>:<factory>', got {target!r}")
    module = importlib.import_module(module_name)
    try:
        return getattr(module, attribute)
    except AttributeError as exc:
        raise ValueError(f"Module {module_name!r} has no attribute {attribute!r}") from exc


def _run_serve(target: str, host: str, port: int) -> None:
    _ensure_supported_python()
    # Allow `agent-runtime serve my_agent:create_agent` from the project folder.
    if os.getcwd() not in sys.path:
        sys.path.insert(0, os.getcwd())

    factory = load_factory(target)
    agent = factory() if callable(factory) else factory

    import uvicorn

    print(f"Agent {type(agent).__name__} listening on http://{host}:{port}")
    uvicorn.run(agent.app, host=host, port=port)


def main() -> None:
    """Serve an agent or handle setup/doctor commands."""
    from .config import build_llm_config, get_settings

    settings = get_settings()
    port = settings.port
    host = settings.host

    if len(sys.argv) < 2:
        _print_help()
        sys.exit(0)

    subcommand = sys.argv[1].strip().lower()
    if subcommand in {"-h", "--help", "help"}:
        _print_help()
        sys.exit(0)
    if subcommand == "setup":
        llm_config = build_llm_config(settings)
        provider = type(llm_config).__name__ if llm_config is not None else "not configured"
        _print_setup_banner(provider=provider, port=port)
        sys.exit(0)
    if subcommand == "doctor":
        _print_doctor()
        sys.exit(0)
    if subcommand == "serve":
        if len(sys.argv) < 3:
            print("Error: serve requires a '<module:factory>' argument", file=sys.stderr)
            sys.exit(2)
        _run_serve(sys.argv[2], host=host, port=port)
        sys.exit(0)

    print(f"Error: unknown command {subcommand!r}", file=sys.stderr)
    _print_help()
    sys.exit(2)


if __name__ == "__main__":
    main()
