"""Fetching and parsing the FOTA ``version.xml`` / ``version.test.xml`` documents."""

from __future__ import annotations

from dataclasses import dataclass, field

import requests
from lxml import etree

from ..config import REQUEST_TIMEOUT, TEST_VERSION_URL, VERSION_URL
from ..errors import ProtocolError, TransportError
from ..logging_setup import log

_LATEST_XPATH = "./firmware/version/latest"
_DIGEST_XPATH = "//version/upgrade/value"


@dataclass(frozen=True)
class VersionDocument:
    """What a version document publishes: a plain latest version and/or target digests."""

    latest: str = ""
    digests: frozenset[str] = field(default_factory=frozenset)

    @property
    def has_latest(self) -> bool:
        return bool(self.latest.strip())


def version_url(region: str, model: str, test: bool = False) -> str:
    template = TEST_VERSION_URL if test else VERSION_URL
    return template.format(region=region, model=model)


def parse_version_document(content: bytes) -> VersionDocument:
    """Parse the XML body of a version document.

    ``latest`` is read from ``versioninfo/firmware/version/latest`` and kept
    verbatim; digests are every non-empty ``//version/upgrade/value``.
    """
    try:
        root = etree.fromstring(content)
    except etree.XMLSyntaxError as exc:
        raise ProtocolError(f"Version document is not valid XML: {exc}") from exc

    latest_el = root.find(_LATEST_XPATH)
    latest = latest_el.text if latest_el is not None and latest_el.text else ""
    digests = frozenset(
        el.text.strip().lower()
        for el in root.xpath(_DIGEST_XPATH)
        if el.text and el.text.strip()
    )
    return VersionDocument(latest=latest, digests=digests)


def fetch_version_document(
    http: requests.Session, region: str, model: str, test: bool = False
) -> VersionDocument:
    url = version_url(region, model, test)
    log.debug("GET %s", url)
    try:
        resp = http.get(url, timeout=REQUEST_TIMEOUT)
    except requests.RequestException as exc:
        raise TransportError(url, None, str(exc)) from exc
    if resp.status_code != 200:
        raise TransportError(url, resp.status_code)
    return parse_version_document(resp.content)
