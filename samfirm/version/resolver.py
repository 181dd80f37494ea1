"""Resolve the firmware version to request for a model/region."""

from __future__ import annotations

from typing import Sequence

import requests

from ..errors import ResolutionError, SamFirmError
from ..logging_setup import log
from .baseline import REGION_PREFIX_RULES, RegionRule, candidate_baselines, prefixes_from_version
from .document import VersionDocument, fetch_version_document
from .search import SearchResult, SearchSpace, iter_candidates, search_digests


class VersionResolver:
    """Reads the published version, or recovers it from the digests of the test document.

    Args:
        http: Session used for the version documents (no FUS state needed).
        space: Candidate alphabets for the digest search.
        rules: Regional prefix table used when no production version exists.
    """

    def __init__(
        self,
        http: requests.Session,
        space: SearchSpace | None = None,
        rules: Sequence[RegionRule] = REGION_PREFIX_RULES,
    ) -> None:
        self.http = http
        self.space = space or SearchSpace()
        self.rules = rules

    def fetch_document(self, region: str, model: str, test: bool = False) -> VersionDocument:
        return fetch_version_document(self.http, region, model, test)

    def resolve(self, region: str, model: str, test: bool = False) -> str:
        document = self.fetch_document(region, model, test)
        if not test and document.has_latest:
            return document.latest
        if not document.digests:
            raise ResolutionError(
                f"Version document for {model}/{region} has neither a latest version nor digests"
            )
        result = self._search(document, region, model, stop_on_first=True, refetch=test)
        if result.first is None:
            raise ResolutionError(
                f"Unable to resolve firmware version for {model}/{region}",
                matched=result.matched, total=result.total,
            )
        return result.first

    def decrypt_all(self, region: str, model: str) -> SearchResult:
        """Recover as many versions of the test document as the search space allows."""
        document = self.fetch_document(region, model, test=True)
        if not document.digests:
            raise ResolutionError(f"No digests published for {model}/{region}")
        log.info("Found %d digests to decrypt", len(document.digests))
        result = self._search(document, region, model, stop_on_first=False, refetch=True)
        log.info(
            "Decrypted %d out of %d versions in %d attempts (%d outstanding)",
            result.matched, result.total, result.attempts, result.outstanding,
        )
        return result

    def _production_latest(
        self, document: VersionDocument, region: str, model: str, refetch: bool
    ) -> str:
        if not refetch:
            return document.latest.strip()
        log.info("Fetching production document for the search baseline")
        try:
            production = self.fetch_document(region, model, test=False)
        except SamFirmError as exc:
            log.warning("Could not fetch production version: %s", exc)
        else:
            if production.has_latest:
                return production.latest.strip()
            log.warning("Production document for %s/%s has no latest version", model, region)

        # test documents usually publish <latest> as a digest too
        own = document.latest.strip()
        if own and prefixes_from_version(own) is not None:
            log.info("Using the test document's latest version as baseline")
            return own
        return ""

    def _search(
        self,
        document: VersionDocument,
        region: str,
        model: str,
        stop_on_first: bool,
        refetch: bool,
    ) -> SearchResult:
        latest = self._production_latest(document, region, model, refetch)
        baselines = candidate_baselines(latest, model, region, self.rules)
        if not baselines:
            raise ResolutionError(
                f"No baseline version or regional prefixes available for {model}/{region}"
            )

        years = self.space.years
        log.info(
            "Searching %d candidates per baseline (years %s..%s)",
            len(self.space), years[:1], years[-1:],
        )
        combined = SearchResult(total=len(document.digests))
        remaining = set(document.digests)
        for baseline in baselines:
            result = search_digests(
                remaining,
                iter_candidates(baseline, self.space),
                stop_on_first=stop_on_first,
                expected=len(self.space) * (1 if baseline.cp else 2),
            )
            combined.attempts += result.attempts
            combined.matches.update(result.matches)
            remaining.difference_update(result.matches)
            if not remaining or (stop_on_first and combined.matches):
                break
        return combined
