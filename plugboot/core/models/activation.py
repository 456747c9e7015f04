"""
Activation receipts — the outcome of invoking one activation method.

Invoking an activation method never raises. Every outcome, including
a signature that cannot be called, ends up in a receipt.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class ActivationReceipt(BaseModel):
    """Result of one activation method invocation."""

    method: str                     # "<module>:<qualname>"
    module: str
    status: Literal["ok", "skipped", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    shape: str = ""                 # no_args, modules, malformed
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @classmethod
    def success(cls, method: str, module: str, **kwargs: Any) -> ActivationReceipt:
        return cls(method=method, module=module, status="ok", **kwargs)

    @classmethod
    def failure(cls, method: str, module: str, error: str, **kwargs: Any) -> ActivationReceipt:
        """Receipt for a method that raised (``error`` is "Type: message")."""
        return cls(method=method, module=module, status="failed", error=error, **kwargs)

    @classmethod
    def skip(cls, method: str, module: str, reason: str = "", **kwargs: Any) -> ActivationReceipt:
        """Receipt for a method that was never called (malformed signature)."""
        return cls(method=method, module=module, status="skipped", error=reason or None, **kwargs)
