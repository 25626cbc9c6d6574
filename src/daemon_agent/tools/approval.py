"""Correlate approval requests with the user's responses."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from loguru import logger

from daemon_agent.core.cancellation import CancellationToken
from daemon_agent.core.provider import ApprovalResponder
from daemon_agent.types import ToolApprovalRequest, ToolApprovalResponse

NO_APPROVAL_HANDLER_REASON = "No approval handler is available, so the tool call was denied."

type ApprovalListener = Callable[[list[ToolApprovalRequest], ApprovalResponder], None]


@dataclass
class _PendingApproval:
    request: ToolApprovalRequest
    future: asyncio.Future[ToolApprovalResponse]


class ApprovalGate:
    """Suspends approval-gated tool calls until a response with the matching id arrives."""

    def __init__(
        self,
        *,
        listener: ApprovalListener | None = None,
        on_request: Callable[[ToolApprovalRequest], None] | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._listener = listener
        self._on_request = on_request
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self._pending: dict[str, _PendingApproval] = {}
        self._batch: list[ToolApprovalRequest] = []

    @property
    def pending(self) -> list[ToolApprovalRequest]:
        return [entry.request for entry in self._pending.values()]

    @property
    def has_listener(self) -> bool:
        return self._listener is not None

    async def request(
        self,
        tool_name: str,
        tool_call_id: str,
        tool_input: dict[str, Any],
        *,
        cancellation: CancellationToken | None = None,
    ) -> ToolApprovalResponse:
        approval_id = self._id_factory()
        if self._listener is None:
            logger.info("approval.denied name={} approval_id={} reason=no_listener", tool_name, approval_id)
            return ToolApprovalResponse(approval_id=approval_id, approved=False, reason=NO_APPROVAL_HANDLER_REASON)

        request = ToolApprovalRequest(
            approval_id=approval_id,
            tool_name=tool_name,
            tool_call_id=tool_call_id,
            input=dict(tool_input),
        )
        future: asyncio.Future[ToolApprovalResponse] = asyncio.get_running_loop().create_future()
        self._pending[approval_id] = _PendingApproval(request=request, future=future)
        logger.info("approval.request name={} approval_id={}", tool_name, approval_id)
        try:
            if self._on_request is not None:
                self._on_request(request)
            self._enqueue(request)
            if cancellation is not None:
                return await cancellation.guard(future)
            return await future
        finally:
            self._pending.pop(approval_id, None)

    def _enqueue(self, request: ToolApprovalRequest) -> None:
        # Requests raised by tool calls of the same step are surfaced as one batch.
        if not self._batch:
            asyncio.get_running_loop().call_soon(self._flush)
        self._batch.append(request)

    def _flush(self) -> None:
        batch, self._batch = self._batch, []
        waiting = [request for request in batch if request.approval_id in self._pending]
        if waiting and self._listener is not None:
            logger.info("approval.awaiting count={}", len(waiting))
            try:
                self._listener(waiting, self.respond)
            except Exception:
                logger.exception("approval.listener.error")
                self.respond(
                    ToolApprovalResponse(
                        approval_id=request.approval_id, approved=False, reason=NO_APPROVAL_HANDLER_REASON
                    )
                    for request in waiting
                )

    def respond(self, responses: Iterable[ToolApprovalResponse]) -> int:
        """Resolve pending requests by approval id. Unknown or already resolved ids are ignored."""
        resolved = 0
        for response in responses:
            entry = self._pending.get(response.approval_id)
            if entry is None or entry.future.done():
                logger.warning("approval.response.ignored approval_id={}", response.approval_id)
                continue
            entry.future.set_result(response)
            resolved += 1
            logger.info(
                "approval.response approval_id={} approved={}",
                response.approval_id,
                response.approved,
            )
        return resolved
