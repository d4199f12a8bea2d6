from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ErrorInfo(BaseModel):
    code: str = Field(..., description="Stable machine-readable code")
    message: str = Field(..., description="Human-readable explanation")
    details: Optional[Dict[str, Any]] = Field(default=None, description="Optional diagnostic details")


class OperationResult(BaseModel):
    """Result record returned by every coordinator operation."""

    ok: bool
    data: Optional[Any] = None
    error: Optional[ErrorInfo] = None

    @classmethod
    def success(cls, data: Any = None) -> "OperationResult":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "OperationResult":
        return cls(ok=False, error=ErrorInfo(code=code, message=message, details=details or None))
