"""Validate, gate and run tool calls, normalizing every outcome."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Literal

from loguru import logger
from pydantic import ValidationError

from daemon_agent.core.provider import ToolCallRequest
from daemon_agent.errors import OperationCancelledError
from daemon_agent.tools.approval import ApprovalGate
from daemon_agent.tools.registry import ToolCallContext, ToolRegistry, render_tool_input

DEFAULT_DENIAL_REASON = "Tool execution was denied by the user. Do not retry this command."

type OutcomeStatus = Literal["ok", "error", "denied", "invalid"]


@dataclass(frozen=True)
class ToolOutcome:
    status: OutcomeStatus
    output: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def succeeded(self) -> bool:
        """True when the tool ran and did not report a failure of its own."""
        if not self.ok:
            return False
        if isinstance(self.output, dict) and self.output.get("success") is False:
            return False
        return True

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"status": self.status}
        if self.output is not None:
            payload["output"] = self.output
        if self.error is not None:
            payload["error"] = self.error
        return payload

    def to_model_content(self) -> str:
        if self.status == "denied":
            return f"[DENIED] {self.error}"
        if self.ok and isinstance(self.output, str):
            return self.output
        return json.dumps(self.to_payload(), ensure_ascii=False, default=str)


class ToolExecutionGate:
    """The single path through which any tool call runs."""

    def __init__(self, registry: ToolRegistry, approvals: ApprovalGate) -> None:
        self._registry = registry
        self._approvals = approvals

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    async def execute(self, call: ToolCallRequest, context: ToolCallContext) -> ToolOutcome:
        descriptor = self._registry.get(call.name)
        if descriptor is None:
            logger.warning("tool.call.unknown name={}", call.name)
            return ToolOutcome(status="error", error=f"unknown tool: {call.name}")

        try:
            params = descriptor.input_model.model_validate(call.arguments)
        except ValidationError as exc:
            logger.info("tool.call.invalid name={} errors={}", call.name, exc.error_count())
            return ToolOutcome(status="invalid", error=str(exc))

        if descriptor.needs_approval is not None and self._requires_approval(descriptor.needs_approval, params):
            response = await self._approvals.request(
                call.name,
                call.id,
                call.arguments,
                cancellation=context.cancellation,
            )
            if not response.approved:
                return ToolOutcome(status="denied", error=response.reason or DEFAULT_DENIAL_REASON)

        logger.info("tool.call.start name={} id={} {{ {} }}", call.name, call.id, render_tool_input(call.arguments))
        start = time.monotonic()
        try:
            output = await descriptor.invoke(params, context)
        except OperationCancelledError:
            raise
        except Exception as exc:
            logger.exception("tool.call.error name={}", call.name)
            return ToolOutcome(status="error", error=str(exc) or type(exc).__name__)
        finally:
            duration = time.monotonic() - start
            logger.info("tool.call.end name={} duration={:.3f}ms", call.name, duration * 1000)
        return ToolOutcome(status="ok", output=output)

    @staticmethod
    def _requires_approval(predicate: Any, params: Any) -> bool:
        try:
            return bool(predicate(params))
        except Exception:
            logger.exception("tool.approval.predicate_error")
            return True
