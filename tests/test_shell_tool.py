from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from daemon_agent.core.cancellation import CancellationToken
from daemon_agent.core.provider import ToolCallRequest
from daemon_agent.errors import OperationCancelledError
from daemon_agent.tools.approval import ApprovalGate
from daemon_agent.tools.execution import ToolExecutionGate
from daemon_agent.tools.registry import ToolCallContext, ToolRegistry
from daemon_agent.tools.shell import TRUNCATION_MARKER, create_bash_tool, run_bash, truncate_output
from daemon_agent.types import BashApprovalLevel


@pytest.mark.asyncio
async def test_run_bash_captures_output(tmp_path: Path) -> None:
    result = await run_bash("echo out; echo err >&2; pwd", cwd=tmp_path, timeout_seconds=10)

    assert result["success"] is True
    assert result["exit_code"] == 0
    assert result["stdout"].splitlines() == ["out", str(tmp_path.resolve())]
    assert result["stderr"] == "err\n"
    assert "error" not in result


@pytest.mark.asyncio
async def test_run_bash_reports_nonzero_exit(tmp_path: Path) -> None:
    result = await run_bash("exit 3", cwd=tmp_path, timeout_seconds=10)

    assert result["success"] is False
    assert result["exit_code"] == 3
    assert result["error"] == "Command exited with code 3"


@pytest.mark.asyncio
async def test_run_bash_times_out(tmp_path: Path) -> None:
    result = await run_bash("sleep 5", cwd=tmp_path, timeout_seconds=0.2)

    assert result == {
        "success": False,
        "exit_code": None,
        "stdout": "",
        "stderr": "",
        "error": "Command timed out after 0.2s",
    }


@pytest.mark.asyncio
async def test_run_bash_truncates_long_output(tmp_path: Path) -> None:
    result = await run_bash("printf 'a%.0s' $(seq 1 50)", cwd=tmp_path, timeout_seconds=10, max_output_chars=10)

    assert result["stdout"] == "a" * 10 + TRUNCATION_MARKER


@pytest.mark.asyncio
async def test_run_bash_stops_on_cancellation(tmp_path: Path) -> None:
    token = CancellationToken()
    task = asyncio.create_task(run_bash("sleep 5", cwd=tmp_path, timeout_seconds=10, cancellation=token))
    await asyncio.sleep(0.1)
    token.cancel()

    with pytest.raises(OperationCancelledError):
        await asyncio.wait_for(task, timeout=2)


def test_truncate_output_leaves_short_text_alone() -> None:
    assert truncate_output("short", 10) == "short"


def _gate(tmp_path: Path, level: list[BashApprovalLevel]) -> ToolExecutionGate:
    registry = ToolRegistry()
    registry.register(create_bash_tool(workspace=tmp_path, approval_level=lambda: level[0], default_timeout_seconds=5))
    return ToolExecutionGate(registry, ApprovalGate())


def _bash(command: str, **extra: str) -> ToolCallRequest:
    return ToolCallRequest(id="call-1", name="bash", arguments={"description": "test", "command": command, **extra})


def _context() -> ToolCallContext:
    return ToolCallContext(tool_call_id="call-1", cancellation=CancellationToken())


@pytest.mark.asyncio
async def test_bash_tool_follows_live_approval_level(tmp_path: Path) -> None:
    level: list[BashApprovalLevel] = ["dangerous"]
    gate = _gate(tmp_path, level)

    allowed = await gate.execute(_bash("echo hi"), _context())
    level[0] = "all"
    denied = await gate.execute(_bash("echo hi"), _context())
    level[0] = "none"
    unguarded = await gate.execute(_bash("rm -f missing-file"), _context())

    assert allowed.ok and allowed.output["stdout"] == "hi\n"
    assert denied.status == "denied"
    assert unguarded.ok


@pytest.mark.asyncio
async def test_bash_tool_runs_in_relative_workdir(tmp_path: Path) -> None:
    (tmp_path / "sub").mkdir()
    gate = _gate(tmp_path, ["none"])

    outcome = await gate.execute(_bash("pwd", workdir="sub"), _context())
    missing = await gate.execute(_bash("pwd", workdir="nope"), _context())

    assert outcome.output["stdout"].strip() == str((tmp_path / "sub").resolve())
    assert missing.status == "error"
    assert "working directory does not exist" in (missing.error or "")
