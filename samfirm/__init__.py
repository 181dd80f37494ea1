"""
samfirm
=======
Python package for downloading Samsung firmware from the FUS (Firmware
Update Server): resolves the version to fetch, performs the nonce-signed
handshake, then streams, decrypts and unpacks the binary to local disk.

Package structure
-----------------
samfirm/
├── __init__.py       – package init and public API
├── config.py         – configuration constants and env overrides
├── errors.py         – exception hierarchy
├── logging_setup.py  – colorlog setup, [DONE] lines, failure banner
├── session.py        – requests.Session factory and FusSession state
├── collaborators.py  – crypto provider protocol/loader, FUS message builder
├── cli.py            – argparse CLI (``python -m samfirm``)
├── version/          – sub-package: version document and digest search
│   ├── triple.py     – PDA/CSC/CP version triples
│   ├── document.py   – version.xml / version.test.xml fetch and parse
│   ├── baseline.py   – search baselines and the regional prefix table
│   ├── search.py     – candidate generator and MD5 digest matching
│   └── resolver.py   – VersionResolver
├── fus/              – sub-package: FUS protocol client
│   ├── auth.py       – Authorization header
│   ├── descriptor.py – binary-inform response parsing
│   └── client.py     – FusClient handshake state machine
└── pipeline/         – sub-package: acquisition pipeline
    ├── cipher.py     – key derivation, streaming AES-ECB decryption
    ├── zipstream.py  – forward-only ZIP reader
    ├── extract.py    – entry extraction, nested tar handling
    ├── disk.py       – disk-full detection
    ├── fallback.py   – aria2c transport and temp-file cleanup
    ├── result.py     – StageResult
    └── acquire.py    – streaming -> aria2c -> extraction chain

Quick start
-----------
    from pathlib import Path
    from samfirm import FusClient, FusSession, VersionResolver, VersionTriple
    from samfirm import acquire_binary, derive_key, load_crypto_provider

    session = FusSession()
    version = VersionTriple.parse(VersionResolver(session.http).resolve("EUX", "SM-S918B"))
    crypto = load_crypto_provider("my_fus_crypto:Provider")
    client = FusClient(session, crypto)
    client.generate_nonce()
    binary = client.fetch_binary_info(version.request_version, "EUX", "SM-S918B", imei)
    client.init_download(binary)
    key = derive_key(binary.version, binary.logic_value, crypto)
    acquire_binary(client, binary, key, Path("SM-S918B_EUX"))
"""

from .collaborators import CryptoProvider, FusMessageBuilder, load_crypto_provider
from .errors import (
    AcquisitionError,
    ConfigurationError,
    DecodeError,
    DiskFullError,
    ExternalToolError,
    ProtocolError,
    ResolutionError,
    SamFirmError,
    TransportError,
)
from .fus import BinaryDescriptor, FusClient
from .pipeline import ComponentFilter, ExtractionStats, acquire_binary, derive_key
from .session import FusSession, build_session
from .version import VersionResolver, VersionTriple

__version__ = "1.0.0"

__all__ = [
    "CryptoProvider",
    "FusMessageBuilder",
    "load_crypto_provider",
    "AcquisitionError",
    "ConfigurationError",
    "DecodeError",
    "DiskFullError",
    "ExternalToolError",
    "ProtocolError",
    "ResolutionError",
    "SamFirmError",
    "TransportError",
    "BinaryDescriptor",
    "FusClient",
    "ComponentFilter",
    "ExtractionStats",
    "acquire_binary",
    "derive_key",
    "FusSession",
    "build_session",
    "VersionResolver",
    "VersionTriple",
]
