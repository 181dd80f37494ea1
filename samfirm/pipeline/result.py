"""Outcome of one acquisition strategy, passed to the next one in the chain."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .extract import ExtractionStats


@dataclass(frozen=True)
class StageResult:
    ok: bool
    error: str = ""
    stats: Optional[ExtractionStats] = None

    @classmethod
    def success(cls, stats: Optional[ExtractionStats] = None) -> "StageResult":
        return cls(True, stats=stats)

    @classmethod
    def failure(cls, reason: str) -> "StageResult":
        return cls(False, reason or "unknown error")

    def __bool__(self) -> bool:
        return self.ok
