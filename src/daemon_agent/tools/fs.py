from __future__ import annotations

from itertools import islice
from pathlib import Path
from typing import Any, Self

from pydantic import BaseModel, Field, model_validator

from daemon_agent.tools.registry import ToolCallContext, ToolDescriptor

READ_FILE_TOOL_NAME = "read_file"
MAX_READ_LINES = 2000


class ReadFileInput(BaseModel):
    path: str = Field(..., description="File path, relative to the workspace or absolute")
    line_offset: int | None = Field(default=None, ge=0, description="Zero-based first line to read")
    line_limit: int | None = Field(default=None, ge=1, le=MAX_READ_LINES, description="Number of lines to read")

    @model_validator(mode="after")
    def _offset_and_limit_together(self) -> Self:
        if (self.line_offset is None) != (self.line_limit is None):
            raise ValueError("line_offset and line_limit must be provided together")
        return self


def read_lines(path: Path, offset: int, limit: int) -> dict[str, Any]:
    with path.open(encoding="utf-8", errors="replace") as handle:
        lines = list(islice(handle, offset, offset + limit + 1))
    has_more = len(lines) > limit
    lines = lines[:limit]
    return {
        "path": str(path),
        "content": "".join(lines),
        "start_line": offset + 1,
        "end_line": offset + len(lines),
        "has_more": has_more,
    }


def create_read_file_tool(*, workspace: Path) -> ToolDescriptor:
    def _handler(params: ReadFileInput, _context: ToolCallContext) -> dict[str, Any]:
        path = Path(params.path).expanduser()
        if not path.is_absolute():
            path = (workspace / path).resolve()
        if not path.is_file():
            raise FileNotFoundError(f"file not found: {params.path}")
        return read_lines(path, params.line_offset or 0, params.line_limit or MAX_READ_LINES)

    return ToolDescriptor(
        name=READ_FILE_TOOL_NAME,
        description=(
            f"Read a text file. Reads the first {MAX_READ_LINES} lines unless line_offset and "
            "line_limit are given together."
        ),
        input_model=ReadFileInput,
        handler=_handler,
    )
