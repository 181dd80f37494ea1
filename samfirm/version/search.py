"""
Brute-force recovery of digest-obscured firmware versions.

The test document lists MD5 digests of unreleased version strings.  Each
candidate keeps the baseline prefixes fixed and enumerates the suffix

    bootloader revision, release train, year, month, serial

under both update types (``U`` major update, ``S`` security patch).  The
alphabets encode assumptions about the vendor's versioning scheme and live
in :class:`SearchSpace` so they can be widened without touching the loop.
"""

from __future__ import annotations

import hashlib
import itertools
import string
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Iterable, Iterator, Optional

from ..config import SEARCH_PROGRESS_EVERY
from ..logging_setup import log
from .baseline import BaselinePrefixes

try:
    from tqdm import tqdm as _tqdm
    _TQDM_AVAILABLE = True
except ImportError:
    _TQDM_AVAILABLE = False

YEAR_BASE = 2001        # year letter "A"
YEARS_BACK = 5
YEARS_AHEAD = 2
MONTHS = "ABCDEFGHIJKL"
SERIALS = "123456789" + string.ascii_uppercase
UPDATE_TYPES = "US"
BOOTLOADERS = string.digits
RELEASE_TRAINS = string.ascii_uppercase


def year_window(today: Optional[date] = None, back: int = YEARS_BACK, ahead: int = YEARS_AHEAD) -> str:
    """Year letters from *back* years ago to *ahead* years in the future, clamped to A..Z."""
    year = (today or date.today()).year
    first = max(0, year - YEAR_BASE - back)
    last = min(25, year - YEAR_BASE + ahead)
    return "".join(chr(ord("A") + i) for i in range(first, last + 1))


@dataclass(frozen=True)
class SearchSpace:
    update_types: str = UPDATE_TYPES
    bootloaders: str = BOOTLOADERS
    release_trains: str = RELEASE_TRAINS
    years: str = field(default_factory=year_window)
    months: str = MONTHS
    serials: str = SERIALS

    def __len__(self) -> int:
        return (len(self.update_types) * len(self.bootloaders) * len(self.release_trains)
                * len(self.years) * len(self.months) * len(self.serials))


@dataclass
class SearchResult:
    total: int
    matches: dict[str, str] = field(default_factory=dict)   # digest -> version
    attempts: int = 0

    @property
    def matched(self) -> int:
        return len(self.matches)

    @property
    def outstanding(self) -> int:
        return self.total - self.matched

    @property
    def first(self) -> Optional[str]:
        return next(iter(self.matches.values()), None)


def md5_hex(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def iter_candidates(baseline: BaselinePrefixes, space: SearchSpace) -> Iterator[str]:
    """Yield every candidate version for *baseline*, serial varying fastest.

    The CSC field carries the suffix without the update-type letter.  When
    the baseline has no CP prefix both ``PDA/CSC/`` and ``PDA/CSC`` are tried.
    """
    for upd, bl, train, year, month, serial in itertools.product(
        space.update_types, space.bootloaders, space.release_trains,
        space.years, space.months, space.serials,
    ):
        suffix = f"{bl}{train}{year}{month}{serial}"
        head = f"{baseline.pda}{upd}{suffix}/{baseline.csc}{suffix}"
        if baseline.cp:
            yield f"{head}/{baseline.cp}{upd}{suffix}"
        else:
            yield f"{head}/"
            yield head


def search_digests(
    targets: Iterable[str],
    candidates: Iterable[str],
    digest: Callable[[str], str] = md5_hex,
    stop_on_first: bool = False,
    expected: Optional[int] = None,
) -> SearchResult:
    """Hash candidates until one (or every) target digest is matched.

    Matches are recorded in enumeration order.  The loop ends early once
    *stop_on_first* is satisfied or no target is left.
    """
    remaining = {t.lower() for t in targets}
    result = SearchResult(total=len(remaining))
    if not remaining:
        return result

    bar = _tqdm(total=expected, unit="cand", unit_scale=True, leave=False) \
        if _TQDM_AVAILABLE and expected else None
    try:
        for candidate in candidates:
            result.attempts += 1
            if bar is not None and result.attempts % 1000 == 0:
                bar.update(1000)
            elif bar is None and result.attempts % SEARCH_PROGRESS_EVERY == 0:
                log.debug(
                    "Progress: %d attempts, %d/%d matched",
                    result.attempts, result.matched, result.total,
                )
            h = digest(candidate)
            if h not in remaining:
                continue
            remaining.discard(h)
            result.matches[h] = candidate
            log.info("Decrypted [%d/%d]: %s", result.matched, result.total, candidate)
            if stop_on_first or not remaining:
                break
    finally:
        if bar is not None:
            bar.close()
    return result
