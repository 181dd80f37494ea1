"""Version resolution: plain latest versions and digest-obscured test versions."""

from samfirm.version.baseline import (
    REGION_PREFIX_RULES,
    BaselinePrefixes,
    RegionRule,
    candidate_baselines,
    prefixes_from_model,
    prefixes_from_version,
)
from samfirm.version.document import VersionDocument, parse_version_document
from samfirm.version.resolver import VersionResolver
from samfirm.version.search import SearchResult, SearchSpace, iter_candidates, md5_hex, search_digests
from samfirm.version.triple import VersionTriple

__all__ = [
    "REGION_PREFIX_RULES",
    "BaselinePrefixes",
    "RegionRule",
    "candidate_baselines",
    "prefixes_from_model",
    "prefixes_from_version",
    "VersionDocument",
    "parse_version_document",
    "VersionResolver",
    "SearchResult",
    "SearchSpace",
    "iter_candidates",
    "md5_hex",
    "search_digests",
    "VersionTriple",
]
