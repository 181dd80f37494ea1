"""HTTP session and FUS nonce state for one firmware acquisition."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import USER_AGENT
from .logging_setup import log


def build_session(verify_ssl: bool = True) -> requests.Session:
    """Return a requests.Session with keep-alive and retries disabled.

    FUS rotates its nonce on every response, so a transparent retry would
    replay a stale signature.  Failures surface to the caller instead.
    """
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=Retry(total=0, redirect=5, raise_on_status=False))
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.verify = verify_ssl
    session.headers.update({
        "User-Agent": USER_AGENT,
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
    })
    return session


@dataclass
class FusSession:
    """Mutable protocol state: the rotating nonce and the cookie-carrying HTTP session.

    ``signed_endpoint`` records which endpoint consumed the signature of the
    current decrypted nonce; it is cleared whenever the server issues a new one.
    """

    http: requests.Session = field(default_factory=build_session)
    nonce: str = ""
    nonce_decrypted: str = ""
    signed_endpoint: Optional[str] = None

    def update_nonce(self, nonce: str, nonce_decrypted: str) -> None:
        self.nonce = nonce
        self.nonce_decrypted = nonce_decrypted
        self.signed_endpoint = None
        log.debug("Nonce rotated: %s", nonce)

    def is_stale_for(self, endpoint: str) -> bool:
        """True when the current signature was already spent on another endpoint."""
        return bool(self.nonce_decrypted) and self.signed_endpoint not in (None, endpoint)

    def mark_signed(self, endpoint: str) -> None:
        if self.nonce_decrypted:
            self.signed_endpoint = endpoint
