from __future__ import annotations

import sys
import types
from types import SimpleNamespace

import pytest

from agent_runtime import cli


def test_print_help_includes_subcommands(capsys: pytest.CaptureFixture[str]) -> None:
    cli._print_help()
    output = capsys.readouterr().out
    assert "agent-runtime serve <module:factory>" in output
    assert "agent-runtime setup" in output
    assert "agent-runtime doctor" in output


def test_main_setup_subcommand_prints_setup_and_exits(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    calls = {}

    def fake_get_settings() -> SimpleNamespace:
        return SimpleNamespace(port=4280, host="127.0.0.1")

    def fake_setup_banner(provider: str, port: int) -> None:
        calls["provider"] = provider
        calls["port"] = port

    monkeypatch.setattr("agent_runtime.config.get_settings", fake_get_settings)
    monkeypatch.setattr("agent_runtime.config.build_llm_config", lambda settings=None: None)
    monkeypatch.setattr(cli, "_print_setup_banner", fake_setup_banner)
    monkeypatch.setattr(cli.sys, "argv", ["agent-runtime", "setup"])

    with pytest.raises(SystemExit) as exc:
        cli.main()

    assert exc.value.code == 0
    assert calls == {"provider": "not configured", "port": 4280}


def test_print_doctor_reports_runtime_info(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.setattr(cli.shutil, "which", lambda _name: "/tmp/agent-runtime")
    monkeypatch.setattr(cli.subprocess, "check_output", lambda *_args, **_kwargs: "pip X.Y.Z")
    monkeypatch.setenv("OPENAI_API_KEY", "o")
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    monkeypatch.delenv("LLM_PROVIDER", raising=False)

    cli._print_doctor()
    output = capsys.readouterr().out
    assert "Agent Runtime Doctor" in output
    assert "PATH bin: /tmp/agent-runtime" in output
    assert "pip X.Y.Z" in output
    assert "LLM:      OpenAIProviderConfig" in output


def test_unknown_command_exits_with_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli.sys, "argv", ["agent-runtime", "bootstrap"])

    with pytest.raises(SystemExit) as exc:
        cli.main()

    assert exc.value.code == 2


def test_load_factory_resolves_module_attribute(monkeypatch: pytest.MonkeyPatch) -> None:
    module = types.ModuleType("my_agents")
    module.create_agent = lambda: "agent"
    monkeypatch.setitem(sys.modules, "my_agents", module)

    assert cli.load_factory("my_agents:create_agent") is module.create_agent

    with pytest.raises(ValueError):
        cli.load_factory("my_agents")
    with pytest.raises(ValueError):
        cli.load_factory("my_agents:missing")


def test_serve_builds_agent_and_runs_uvicorn(monkeypatch: pytest.MonkeyPatch) -> None:
    served = {}
    agent = SimpleNamespace(app="asgi-app")
    module = types.ModuleType("my_agents")
    module.create_agent = lambda: agent
    monkeypatch.setitem(sys.modules, "my_agents", module)

    fake_uvicorn = types.ModuleType("uvicorn")

    def fake_run(app, host, port):
        served.update(app=app, host=host, port=port)

    fake_uvicorn.run = fake_run
    monkeypatch.setitem(sys.modules, "uvicorn", fake_uvicorn)

    cli._run_serve("my_agents:create_agent", host="127.0.0.1", port=3100)

    assert served == {"app": "asgi-app", "host": "127.0.0.1", "port": 3100}
