from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CLIModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class ErrorInfo(CLIModel):
    type: str
    message: str
    hint: str | None = None
    status: int | None = None
    details: dict[str, Any] | None = None


class CommandMeta(CLIModel):
    duration_ms: int = Field(..., alias="durationMs")
    base_url: str | None = Field(None, alias="baseUrl")
    status: int | None = None
    progress: dict[str, Any] | None = None


class CommandResult(CLIModel):
    ok: bool
    command: str
    data: Any | None = None
    warnings: list[str] = Field(default_factory=list)
    meta: CommandMeta
    error: ErrorInfo | None = None
