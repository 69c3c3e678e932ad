"""
Step receipts — the outcome of each step a verb performs.

A verb such as ``snapshot`` is create → sync → list. Each step produces
one Receipt so the CLI can print a status line per step and a failure's
blast radius stays visible without checking exit codes.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Receipt(BaseModel):
    """Result of one step of a verb."""

    step: str                                   # create, sync, delete, upgrade ...
    status: Literal["ok", "skipped", "failed"] = "ok"
    fatal: bool = False                         # failed step that decides the exit code

    started_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""
    error: str | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the step succeeded."""
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        """Whether the step failed."""
        return self.status == "failed"

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"

    @classmethod
    def success(cls, step: str, output: str = "", **kwargs: Any) -> Receipt:
        """Create a success receipt."""
        return cls(step=step, status="ok", output=output, **kwargs)

    @classmethod
    def failure(
        cls,
        step: str,
        error: str,
        fatal: bool = True,
        **kwargs: Any,
    ) -> Receipt:
        """Create a failure receipt.

        Non-fatal failures (bootloader sync) are reported as warnings and
        never change the verb's exit code.
        """
        return cls(step=step, status="failed", error=error, fatal=fatal, **kwargs)

    @classmethod
    def skip(cls, step: str, reason: str = "", **kwargs: Any) -> Receipt:
        """Create a skip receipt."""
        return cls(step=step, status="skipped", output=reason, **kwargs)
