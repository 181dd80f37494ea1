"""
Command-line interface for the Samsung FUS firmware downloader.

Provides argument parsing and the main execution flow.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from samfirm.collaborators import load_crypto_provider
from samfirm.config import COMPONENT_TAGS
from samfirm.errors import SamFirmError
from samfirm.fus.client import FusClient
from samfirm.logging_setup import _COLORLOG_AVAILABLE, _setup_logging, done, fail_banner, log
from samfirm.pipeline.acquire import acquire_binary
from samfirm.pipeline.cipher import _TQDM_AVAILABLE, derive_key
from samfirm.pipeline.extract import ComponentFilter
from samfirm.session import FusSession
from samfirm.version.resolver import VersionResolver
from samfirm.version.triple import VersionTriple


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="samfirm",
        description="Download, decrypt and unpack Samsung firmware from the FUS servers.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "The FUS crypto provider is taken from --crypto, the SAMFIRM_CRYPTO env var,\n"
            "or an installed package exposing the 'samfirm.crypto' entry point."
        ),
    )
    parser.add_argument("-m", "--model", required=True, help="Device model, e.g. SM-S918B")
    parser.add_argument("-r", "--region", required=True, help="Region / CSC code, e.g. EUX")
    parser.add_argument("-i", "--imei", required=True, help="Device IMEI or serial number")
    parser.add_argument(
        "-c", "--component", dest="components", action="append", default=[],
        choices=COMPONENT_TAGS, type=str.upper,
        help="Only extract this component (repeatable; default: everything)",
    )
    parser.add_argument(
        "-t", "--test", action="store_true",
        help="Use the test firmware server (version.test.xml)",
    )
    parser.add_argument(
        "--list-test-versions", action="store_true",
        help="Decrypt every version hash published on the test server and exit",
    )
    parser.add_argument(
        "-o", "--output", default=None,
        help="Output directory (default: ./<model>_<region>)",
    )
    parser.add_argument(
        "--crypto", default="",
        help="Crypto provider as module:attr (overrides SAMFIRM_CRYPTO)",
    )
    parser.add_argument(
        "--no-aria2", dest="use_aria2", action="store_false", default=True,
        help="Do not fall back to aria2c when the streaming download fails",
    )
    parser.add_argument("--debug", action="store_true", help="Enable verbose debug logging")
    return parser.parse_args(argv)


def _list_test_versions(resolver: VersionResolver, region: str, model: str) -> int:
    result = resolver.decrypt_all(region, model)
    for version in sorted(result.matches.values()):
        print(version)
    if result.outstanding:
        log.warning("%d digest(s) could not be decrypted", result.outstanding)
    return 0


def run(args: argparse.Namespace) -> int:
    """Execute one download; returns the process exit code."""
    model = args.model.strip().upper()
    region = args.region.strip().upper()
    session = FusSession()
    resolver = VersionResolver(session.http)

    log.info("Model: %s", model)
    log.info("Region: %s", region)
    if args.test:
        log.info("Using test firmware server")

    try:
        if args.list_test_versions:
            return _list_test_versions(resolver, region, model)

        latest = resolver.resolve(region, model, test=args.test)
        try:
            triple = VersionTriple.parse(latest)
        except ValueError as exc:
            fail_banner(f"Invalid firmware version {latest!r}: {exc}", 1)
            return 1
        if not triple.is_well_formed():
            log.warning("Version %s does not follow the usual PDA/CSC/CP layout", triple)
        log.info("Latest version:")
        log.info("  PDA:   %s", triple.pda)
        log.info("  CSC:   %s", triple.csc)
        log.info("  MODEM: %s", triple.cp or "N/A")

        crypto = load_crypto_provider(args.crypto)
        client = FusClient(session, crypto)
        client.generate_nonce()
        descriptor = client.fetch_binary_info(triple.request_version, region, model, args.imei)
        log.info("Binary: %s (%d bytes)", descriptor.filename, descriptor.size)
        client.init_download(descriptor)

        key = derive_key(descriptor.version, descriptor.logic_value, crypto)
        dest = Path(args.output or f"./{model}_{region}").resolve()
        log.info("Saving to: %s", dest)

        stats = acquire_binary(
            client, descriptor, key, dest,
            components=ComponentFilter(args.components),
            use_fallback=args.use_aria2,
        )
    except SamFirmError as exc:
        fail_banner(str(exc), 1)
        return 1

    done(f"{stats.extracted} file(s) extracted, {stats.skipped} skipped, into {dest}")
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    """
    Main entry point for the downloader CLI.
    """
    args = parse_args(argv)

    _setup_logging(debug=args.debug)

    if args.debug:
        logging.getLogger("urllib3").setLevel(logging.DEBUG)

    if not _TQDM_AVAILABLE:
        log.info("Tip: install tqdm for a live progress bar  (pip install tqdm)")
    if not _COLORLOG_AVAILABLE:
        log.info("Tip: install colorlog for colored output   (pip install colorlog)")

    sys.exit(run(args))


if __name__ == "__main__":
    main()
