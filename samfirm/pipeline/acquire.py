"""
Acquisition of one firmware binary.

Strategies are tried in order, each reporting a :class:`StageResult`:

1. stream: download, decrypt and extract in a single pass, nothing
   encrypted touches the disk;
2. aria2c: fetch the encrypted archive to disk, then decrypt and extract it
   from the file.

``DiskFullError`` ends the run at once; it is never handed to the next
strategy.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import requests
import urllib3

from ..errors import AcquisitionError, DiskFullError, SamFirmError
from ..fus.client import FusClient
from ..fus.descriptor import BinaryDescriptor
from ..logging_setup import done, log
from .cipher import DecryptingReader, ProgressReader
from .extract import ComponentFilter, ExtractionStats, extract_archive
from .fallback import Aria2Transport, cleanup_partial_download
from .result import StageResult


def stream_and_extract(
    client: FusClient,
    descriptor: BinaryDescriptor,
    key: bytes,
    dest: Path,
    components: Optional[ComponentFilter] = None,
) -> StageResult:
    log.info("Using streaming mode (download + decrypt + extract in one pass)...")
    try:
        resp = client.open_download(descriptor)
    except SamFirmError as exc:
        log.warning("Streaming download failed: %s", exc)
        return StageResult.failure(str(exc))

    try:
        with resp:
            resp.raw.decode_content = True
            with ProgressReader(resp.raw, total=descriptor.size) as progress, \
                    DecryptingReader(progress, key) as plain:
                log.info("Decrypting and extracting firmware...")
                stats = extract_archive(plain, dest, components)
    except DiskFullError:
        raise
    except (SamFirmError, requests.RequestException, urllib3.exceptions.HTTPError, OSError) as exc:
        log.warning("Streaming download failed: %s", exc)
        return StageResult.failure(str(exc))

    done("Download, decryption, and extraction complete!")
    return StageResult.success(stats)


def download_via_aria2(
    client: FusClient,
    descriptor: BinaryDescriptor,
    encrypted_path: Path,
    transport: Optional[Aria2Transport] = None,
) -> StageResult:
    transport = transport or Aria2Transport()
    try:
        headers = client.download_headers()
    except SamFirmError as exc:
        log.warning("Could not sign the aria2c request: %s", exc)
        return StageResult.failure(str(exc))
    return transport.download(client.download_url(descriptor), encrypted_path, headers)


def extract_downloaded_file(
    encrypted_path: Path,
    key: bytes,
    dest: Path,
    components: Optional[ComponentFilter] = None,
) -> ExtractionStats:
    with open(encrypted_path, "rb") as fh, DecryptingReader(fh, key) as plain:
        return extract_archive(plain, dest, components)


def acquire_binary(
    client: FusClient,
    descriptor: BinaryDescriptor,
    key: bytes,
    dest: Path,
    components: Optional[ComponentFilter] = None,
    transport: Optional[Aria2Transport] = None,
    use_fallback: bool = True,
) -> ExtractionStats:
    """Download, decrypt and extract *descriptor* into *dest*.

    Raises AcquisitionError when both transports failed, DiskFullError when
    the device fills up, and DecodeError when a fully downloaded archive
    cannot be decrypted or unpacked.
    """
    dest = Path(dest)
    dest.mkdir(parents=True, exist_ok=True)
    log.info("Downloading firmware: %s", Path(descriptor.filename).name)
    log.info("File size: %.2f GB", descriptor.size / (1024 ** 3))

    try:
        streamed = stream_and_extract(client, descriptor, key, dest, components)
        if streamed:
            client.finish()
            return streamed.stats

        if not use_fallback:
            raise AcquisitionError(streamed.error, "disabled")

        log.warning("Streaming download failed, trying aria2c...")
        encrypted_path = dest / Path(descriptor.filename).name
        fetched = download_via_aria2(client, descriptor, encrypted_path, transport)
        if not fetched:
            cleanup_partial_download(encrypted_path, dest)
            raise AcquisitionError(streamed.error, fetched.error)

        done("Download complete, now decrypting and extracting...")
        try:
            stats = extract_downloaded_file(encrypted_path, key, dest, components)
        finally:
            cleanup_partial_download(encrypted_path, dest)
        done("Decryption and extraction complete!")
    except SamFirmError:
        client.finish(success=False)
        raise

    client.finish()
    return stats
