"""PDA/CSC/CP firmware version triples."""

from __future__ import annotations

import re
from dataclasses import dataclass

# prefix, bootloader revision, release train, year, month, serial
_FIELD_RE = re.compile(r"^[A-Z0-9]{4,10}[0-9A-Z][A-Z][A-Z][A-L][0-9A-Z]$")


@dataclass(frozen=True)
class VersionTriple:
    """A firmware version: main build (PDA), carrier customization (CSC), modem (CP)."""

    pda: str
    csc: str
    cp: str = ""

    def __post_init__(self) -> None:
        if not self.pda or not self.csc:
            raise ValueError(f"PDA and CSC are required, got {self!s}")

    @classmethod
    def parse(cls, value: str) -> "VersionTriple":
        parts = [p.strip() for p in value.strip().split("/")]
        pda = parts[0] if parts else ""
        csc = parts[1] if len(parts) > 1 else ""
        cp = parts[2] if len(parts) > 2 else ""
        return cls(pda, csc, cp)

    def __str__(self) -> str:
        return f"{self.pda}/{self.csc}/{self.cp}"

    @property
    def request_version(self) -> str:
        """Four-field version sent to binary-inform; an empty CP falls back to PDA."""
        return f"{self.pda}/{self.csc}/{self.cp or self.pda}/{self.pda}"

    def is_well_formed(self) -> bool:
        fields = [self.pda, self.csc] + ([self.cp] if self.cp else [])
        return all(10 <= len(f) <= 16 and _FIELD_RE.match(f) for f in fields)
