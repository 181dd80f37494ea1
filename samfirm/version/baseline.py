"""
Fixed version prefixes that anchor the digest search.

A production version such as ``S916BXXU3AXK1/S916BOXM3AXK1/S916BXXU3AXK1``
yields the prefixes ``S916BXX`` / ``S916BOXM`` / ``S916BXX``; the search then
only enumerates the variable suffix.  Without a production version the
prefixes are synthesised from the model code and a regional prefix table.
The table is a guess about the vendor's naming and is known to be
incomplete, so it is plain data that callers can replace.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Sequence

from ..config import CSC_SUFFIX_LENGTH, PDA_SUFFIX_LENGTH
from ..logging_setup import log
from .triple import VersionTriple


@dataclass(frozen=True)
class BaselinePrefixes:
    pda: str
    csc: str
    cp: str = ""


@dataclass(frozen=True)
class RegionRule:
    pattern: str
    prefixes: tuple[str, ...]

    def matches(self, region: str) -> bool:
        return re.fullmatch(self.pattern, region) is not None


# First matching rule wins.
REGION_PREFIX_RULES: tuple[RegionRule, ...] = (
    RegionRule(r"CHC|CHN", ("ZCS", "ZCU", "ZHU")),
    RegionRule(r"E.*",     ("XXU", "DBT", "OXM")),
    RegionRule(r"KOO",     ("KSU", "SKC", "KTC")),
    RegionRule(r"XAA",     ("UEU", "TMB", "ATT")),
    RegionRule(r".*",      ("XXU", "OXM")),
)


def model_code(model: str) -> str:
    """``SM-S916B`` -> ``S916B``."""
    return model.upper().replace("SM-", "").replace("-", "")


def prefixes_from_version(latest: str) -> Optional[BaselinePrefixes]:
    """Strip the variable suffix from each field of a production version."""
    try:
        triple = VersionTriple.parse(latest)
    except ValueError:
        return None
    if len(triple.pda) <= PDA_SUFFIX_LENGTH or len(triple.csc) <= CSC_SUFFIX_LENGTH:
        return None
    cp = triple.cp[:-PDA_SUFFIX_LENGTH] if len(triple.cp) > PDA_SUFFIX_LENGTH else ""
    return BaselinePrefixes(
        pda=triple.pda[:-PDA_SUFFIX_LENGTH],
        csc=triple.csc[:-CSC_SUFFIX_LENGTH],
        cp=cp,
    )


def prefixes_from_model(
    model: str, region: str, rules: Sequence[RegionRule] = REGION_PREFIX_RULES
) -> list[BaselinePrefixes]:
    """One baseline per regional prefix of the first rule matching *region*.

    Returns an empty list when the model code is empty or no rule applies.
    """
    code = model_code(model)
    if not code:
        return []
    rule = next((r for r in rules if r.matches(region.upper())), None)
    if rule is None:
        return []
    csc = code + (region.upper() if len(region) == 3 else "OXM")
    return [BaselinePrefixes(pda=code + p, csc=csc, cp=code + p) for p in rule.prefixes]


def candidate_baselines(
    latest: str,
    model: str,
    region: str,
    rules: Sequence[RegionRule] = REGION_PREFIX_RULES,
) -> list[BaselinePrefixes]:
    """Baselines to search, the production-derived one alone when available."""
    if latest:
        from_latest = prefixes_from_version(latest)
        if from_latest is not None:
            log.info("Using production version as reference: %s", latest)
            return [from_latest]
        log.warning("Unusable production version %r, using model-based prefixes", latest)
    baselines = prefixes_from_model(model, region, rules)
    if baselines:
        log.info(
            "Constructed base codes from model: %s",
            ", ".join(f"{b.pda}/{b.csc}" for b in baselines),
        )
    return baselines
