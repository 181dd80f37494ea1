"""
Collaborator contracts consumed by the protocol client and the pipeline.

The FUS nonce decryption, request signature and logic-check algorithms are
not implemented in this package.  A provider is plugged in at runtime:

  * ``--crypto module:attr`` on the command line,
  * the ``SAMFIRM_CRYPTO`` environment variable (same syntax), or
  * an installed distribution advertising the ``samfirm.crypto`` entry point.

``attr`` may name a class (instantiated without arguments) or any object
exposing the three functions; a bare ``module`` uses the module itself.
"""

from __future__ import annotations

import importlib
from importlib.metadata import entry_points
from typing import Protocol, runtime_checkable

from lxml import etree

from .config import CRYPTO_ENTRY_POINT_GROUP, CRYPTO_PROVIDER
from .errors import ConfigurationError
from .logging_setup import log


@runtime_checkable
class CryptoProvider(Protocol):
    def decrypt_nonce(self, nonce: str) -> str: ...

    def signature(self, nonce_decrypted: str) -> str: ...

    def logic_check(self, value: str, logic: str) -> str: ...


@runtime_checkable
class MessageBuilder(Protocol):
    def build_inform_request(
        self, version: str, region: str, model: str, imei: str, nonce: str
    ) -> str: ...

    def build_init_request(self, filename: str, nonce: str) -> str: ...


class FusMessageBuilder:
    """Builds the ``FUSMsg`` request envelopes for binary-inform and binary-init."""

    CLIENT_PRODUCT = "Smart Switch"
    CLIENT_VERSION = "4.3.23123_1"

    def __init__(self, crypto: CryptoProvider) -> None:
        self.crypto = crypto

    @staticmethod
    def _envelope(fields: list[tuple[str, str]]) -> str:
        root = etree.Element("FUSMsg")
        header = etree.SubElement(root, "FUSHdr")
        etree.SubElement(header, "ProtoVer").text = "1.0"
        put = etree.SubElement(etree.SubElement(root, "FUSBody"), "Put")
        for name, value in fields:
            etree.SubElement(etree.SubElement(put, name), "Data").text = value
        return etree.tostring(root, encoding="unicode")

    def build_inform_request(
        self, version: str, region: str, model: str, imei: str, nonce: str
    ) -> str:
        return self._envelope([
            ("ACCESS_MODE", "2"),
            ("BINARY_NATURE", "1"),
            ("CLIENT_PRODUCT", self.CLIENT_PRODUCT),
            ("CLIENT_VERSION", self.CLIENT_VERSION),
            ("DEVICE_IMEI_PUSH", imei),
            ("DEVICE_FW_VERSION", version),
            ("DEVICE_LOCAL_CODE", region),
            ("DEVICE_MODEL_NAME", model),
            ("LOGIC_CHECK", self.crypto.logic_check(version, nonce)),
        ])

    def build_init_request(self, filename: str, nonce: str) -> str:
        # the logic check for init runs over the last 16 chars of the bare file name
        logic_source = filename.split(".")[0][-16:]
        return self._envelope([
            ("BINARY_FILE_NAME", filename),
            ("LOGIC_CHECK", self.crypto.logic_check(logic_source, nonce)),
        ])


def _instantiate(obj: object, origin: str) -> CryptoProvider:
    if isinstance(obj, type):
        obj = obj()
    if not isinstance(obj, CryptoProvider):
        raise ConfigurationError(
            f"Crypto provider {origin!r} must define decrypt_nonce, signature and logic_check"
        )
    return obj


def load_crypto_provider(locator: str = "") -> CryptoProvider:
    """Resolve the Crypto Collaborator from *locator*, the environment, or entry points."""
    locator = locator or CRYPTO_PROVIDER
    if locator:
        module_name, _, attr = locator.partition(":")
        try:
            module = importlib.import_module(module_name)
        except ImportError as exc:
            raise ConfigurationError(f"Cannot import crypto provider {locator!r}: {exc}") from exc
        if not attr:
            return _instantiate(module, locator)
        try:
            obj = getattr(module, attr)
        except AttributeError as exc:
            raise ConfigurationError(f"Crypto provider {locator!r} not found") from exc
        log.debug("Crypto provider loaded from %s", locator)
        return _instantiate(obj, locator)

    for ep in entry_points(group=CRYPTO_ENTRY_POINT_GROUP):
        log.debug("Crypto provider loaded from entry point %s", ep.value)
        return _instantiate(ep.load(), ep.value)

    raise ConfigurationError(
        "No FUS crypto provider configured. Pass --crypto module:attr, set "
        f"SAMFIRM_CRYPTO, or install a package exposing the {CRYPTO_ENTRY_POINT_GROUP!r} entry point."
    )
