from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pytest

from daemon_agent.config import Preferences, Settings, get_settings
from daemon_agent.core.provider import ModelStep
from daemon_agent.errors import (
    ApiKeyNotConfiguredError,
    ConfigurationError,
    InvalidModelFormatError,
    WorkspaceNotFoundError,
)
from daemon_agent.runtime import DaemonRuntime
from daemon_agent.types import Message


class StaticModel:
    async def complete(self, messages: Sequence[Message], **_kwargs: Any) -> ModelStep:
        return ModelStep(text="ready")


def test_settings_read_prefixed_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DAEMON_MODEL", "openai:gpt-4o")
    monkeypatch.setenv("DAEMON_BASH_APPROVAL_LEVEL", "all")
    monkeypatch.setenv("DAEMON_DISABLED_TOOLS", '["subagent"]')
    monkeypatch.setenv("DAEMON_INTERACTION_MODE", "voice")

    settings = get_settings(model=None, max_steps=7)
    preferences = Preferences.from_settings(settings)

    assert settings.model == "openai:gpt-4o"
    assert settings.max_steps == 7
    assert preferences.bash_approval_level == "all"
    assert preferences.disabled_tools == {"subagent"}
    assert preferences.tts_enabled is True


def test_settings_expose_only_runtime_fields(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DAEMON_HOME", "/tmp/elsewhere")

    settings = get_settings()

    assert "home" not in Settings.model_fields
    assert not hasattr(settings, "resolve_home")


def test_build_with_explicit_model_wires_builtin_tools(tmp_path: Path) -> None:
    runtime = DaemonRuntime.build(tmp_path, settings=Settings(disabled_tools={"todo"}), model=StaticModel())

    assert runtime.tool_names == ["bash", "read_file", "subagent"]
    assert runtime.workspace == tmp_path.resolve()
    assert runtime.daemon.preferences is runtime.preferences


def test_build_rejects_missing_workspace(tmp_path: Path) -> None:
    with pytest.raises(WorkspaceNotFoundError, match="does not exist"):
        DaemonRuntime.build(tmp_path / "missing", settings=Settings(), model=StaticModel())


def test_build_requires_api_key_without_explicit_model(tmp_path: Path) -> None:
    with pytest.raises(ApiKeyNotConfiguredError, match="DAEMON_API_KEY"):
        DaemonRuntime.build(tmp_path, settings=Settings(model="openai:gpt-4o-mini", api_key=None))


def test_build_rejects_model_without_provider(tmp_path: Path) -> None:
    with pytest.raises(InvalidModelFormatError) as excinfo:
        DaemonRuntime.build(tmp_path, settings=Settings(model="gpt-4o-mini", api_key="sk-test"))

    assert isinstance(excinfo.value, ConfigurationError)
