"""
FUS protocol client.

Handshake order (``ClientState``)::

    UNAUTHENTICATED -> NONCE_OBTAINED -> INFORMED -> INITIALIZED -> DOWNLOADING -> DONE
                                   any failure -> FAILED

Every response may carry a ``NONCE`` header.  It is decrypted through the
Crypto Collaborator and written to the :class:`FusSession` before the next
request is signed.  Network failures are reported as
``NO_RESPONSE_STATUS`` and undecodable bodies as ``UNREADABLE_BODY_STATUS``;
nothing is retried here.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import Optional

import requests

from ..collaborators import CryptoProvider, FusMessageBuilder, MessageBuilder
from ..config import (
    CLOUD_URL,
    DOWNLOAD_ENDPOINT,
    DOWNLOAD_TIMEOUT,
    FUS_URL,
    INFORM_ENDPOINT,
    INIT_ENDPOINT,
    NO_RESPONSE_STATUS,
    NONCE_ENDPOINT,
    REQUEST_TIMEOUT,
    UNREADABLE_BODY_STATUS,
    USER_AGENT,
)
from ..errors import ProtocolError, TransportError
from ..logging_setup import log
from ..session import FusSession
from .auth import build_authorization
from .descriptor import BinaryDescriptor, parse_binary_inform

_WHITESPACE_RE = re.compile(r"\r\n?|\n|\t")


class ClientState(enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    NONCE_OBTAINED = "nonce-obtained"
    INFORMED = "informed"
    INITIALIZED = "initialized"
    DOWNLOADING = "downloading"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class FusResponse:
    status: int
    body: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == 200


class FusClient:
    def __init__(
        self,
        session: FusSession,
        crypto: CryptoProvider,
        messages: Optional[MessageBuilder] = None,
        fus_url: str = FUS_URL,
        cloud_url: str = CLOUD_URL,
    ) -> None:
        self.session = session
        self.crypto = crypto
        self.messages = messages or FusMessageBuilder(crypto)
        self.fus_url = fus_url.rstrip("/")
        self.cloud_url = cloud_url.rstrip("/")
        self.state = ClientState.UNAUTHENTICATED

    # ------------------------------------------------------------------
    # plumbing
    # ------------------------------------------------------------------

    def _require(self, *states: ClientState) -> None:
        if self.state not in states:
            expected = ", ".join(s.name for s in states)
            raise ProtocolError(f"Request not allowed in state {self.state.name} (expected {expected})")

    def _fail(self, exc: Exception) -> Exception:
        self.state = ClientState.FAILED
        return exc

    def _signed_headers(self, endpoint: str) -> dict[str, str]:
        headers = {"Authorization": build_authorization(self.session, self.crypto)}
        self.session.mark_signed(endpoint)
        return headers

    def _absorb_nonce(self, resp: requests.Response) -> None:
        nonce = resp.headers.get("NONCE")
        if nonce:
            self.session.update_nonce(nonce, self.crypto.decrypt_nonce(nonce))

    def _ensure_fresh_nonce(self, endpoint: str) -> None:
        if self.session.is_stale_for(endpoint):
            log.debug("Signature already spent on %s, requesting a new nonce", self.session.signed_endpoint)
            self.generate_nonce()

    def _post(self, endpoint: str, body: bytes = b"") -> FusResponse:
        url = f"{self.fus_url}/{endpoint}"
        headers = self._signed_headers(endpoint)
        try:
            resp = self.session.http.post(url, data=body, headers=headers, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as exc:
            log.error("%s -> %s", endpoint, exc)
            return FusResponse(NO_RESPONSE_STATUS)

        with resp:
            self._absorb_nonce(resp)
            if resp.status_code != 200:
                log.debug("%s -> HTTP %d", endpoint, resp.status_code)
                return FusResponse(resp.status_code)
            try:
                text = resp.content.decode("utf-8")
            except (requests.RequestException, UnicodeDecodeError) as exc:
                log.error("%s -> unreadable response body: %s", endpoint, exc)
                return FusResponse(UNREADABLE_BODY_STATUS)
        return FusResponse(200, text)

    @staticmethod
    def _compact(xml: str) -> bytes:
        return _WHITESPACE_RE.sub("", xml).encode("ascii")

    # ------------------------------------------------------------------
    # handshake
    # ------------------------------------------------------------------

    def generate_nonce(self) -> int:
        resp = self._post(NONCE_ENDPOINT)
        if not 200 <= resp.status < 300:
            raise self._fail(TransportError(NONCE_ENDPOINT, resp.status))
        # a rotation clears signed_endpoint; still set means no NONCE came back
        if not self.session.nonce_decrypted or self.session.signed_endpoint == NONCE_ENDPOINT:
            raise self._fail(ProtocolError(f"{NONCE_ENDPOINT} response carried no NONCE header"))
        if self.state is ClientState.UNAUTHENTICATED:
            self.state = ClientState.NONCE_OBTAINED
        return resp.status

    def download_binary_inform(self, version: str, region: str, model: str, imei: str) -> FusResponse:
        self._require(ClientState.NONCE_OBTAINED, ClientState.INFORMED)
        self._ensure_fresh_nonce(INFORM_ENDPOINT)
        xml = self.messages.build_inform_request(
            version, region, model, imei, self.session.nonce_decrypted
        )
        resp = self._post(INFORM_ENDPOINT, self._compact(xml))
        if resp.ok:
            self.state = ClientState.INFORMED
        return resp

    def download_binary_init(self, filename: str) -> FusResponse:
        self._require(ClientState.INFORMED, ClientState.INITIALIZED)
        self._ensure_fresh_nonce(INIT_ENDPOINT)
        xml = self.messages.build_init_request(filename, self.session.nonce_decrypted)
        resp = self._post(INIT_ENDPOINT, self._compact(xml))
        if resp.ok:
            self.state = ClientState.INITIALIZED
        return resp

    def fetch_binary_info(self, version: str, region: str, model: str, imei: str) -> BinaryDescriptor:
        """Inform and parse; raises instead of returning a status."""
        resp = self.download_binary_inform(version, region, model, imei)
        if not resp.ok or not resp.body:
            raise self._fail(TransportError(INFORM_ENDPOINT, resp.status, "failed to fetch binary info"))
        try:
            return parse_binary_inform(resp.body)
        except ProtocolError as exc:
            raise self._fail(exc)

    def init_download(self, descriptor: BinaryDescriptor) -> None:
        resp = self.download_binary_init(descriptor.filename)
        if not resp.ok:
            raise self._fail(TransportError(INIT_ENDPOINT, resp.status))

    # ------------------------------------------------------------------
    # binary retrieval
    # ------------------------------------------------------------------

    def download_url(self, descriptor: BinaryDescriptor) -> str:
        return f"{self.cloud_url}/{DOWNLOAD_ENDPOINT}?file={descriptor.remote_file}"

    def download_headers(self) -> dict[str, str]:
        """Headers an external downloader must send for the binary request."""
        self._require(ClientState.INITIALIZED, ClientState.DOWNLOADING)
        self._ensure_fresh_nonce(DOWNLOAD_ENDPOINT)
        headers = self._signed_headers(DOWNLOAD_ENDPOINT)
        headers["User-Agent"] = USER_AGENT
        return headers

    def open_download(self, descriptor: BinaryDescriptor) -> requests.Response:
        """GET the encrypted archive; the caller owns (and must close) the response."""
        self._require(ClientState.INITIALIZED, ClientState.DOWNLOADING)
        self._ensure_fresh_nonce(DOWNLOAD_ENDPOINT)
        url = self.download_url(descriptor)
        try:
            resp = self.session.http.get(
                url,
                headers=self._signed_headers(DOWNLOAD_ENDPOINT),
                stream=True,
                timeout=DOWNLOAD_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise TransportError(DOWNLOAD_ENDPOINT, NO_RESPONSE_STATUS, str(exc)) from exc
        self._absorb_nonce(resp)
        if resp.status_code != 200:
            resp.close()
            raise TransportError(DOWNLOAD_ENDPOINT, resp.status_code)
        self.state = ClientState.DOWNLOADING
        return resp

    def finish(self, success: bool = True) -> None:
        self.state = ClientState.DONE if success else ClientState.FAILED
