"""Message protocol between the engine and the embedding worker process.

Request:  ``{"action": "initialize" | "embed", "payload": {...}, "correlation_id": "..."}``
Response: ``{"correlation_id": "...", "result": ...}`` or
          ``{"correlation_id": "...", "error": "message"}``

Messages cross the process boundary as plain dicts.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, model_validator


class WorkerAction(StrEnum):
    INITIALIZE = "initialize"
    EMBED = "embed"


class WorkerRequest(BaseModel):
    action: WorkerAction
    payload: dict[str, Any] = Field(default_factory=dict)
    correlation_id: str


class WorkerResponse(BaseModel):
    correlation_id: str
    result: Any = None
    error: str | None = None

    @model_validator(mode="after")
    def _require_result_or_error(self) -> WorkerResponse:
        if "result" not in self.model_fields_set and self.error is None:
            raise ValueError("worker response carries neither result nor error")
        return self

    @classmethod
    def success(cls, correlation_id: str, result: Any) -> dict[str, Any]:
        return {"correlation_id": correlation_id, "result": result}

    @classmethod
    def failure(cls, correlation_id: str, error: str) -> dict[str, Any]:
        return {"correlation_id": correlation_id, "error": error}
