"""
Extraction of the decrypted firmware archive.

The outer archive is a ZIP whose entries are usually ``.tar.md5`` images
(``AP_``, ``BL_``, ``CP_``, ``CSC_``, ``HOME_CSC_``).  Nested tars are
unpacked straight out of the ZIP entry stream; when that fails the entry is
spilled to a temporary file and unpacked from disk instead.
"""

from __future__ import annotations

import io
import os
import tarfile
import tempfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Iterable, Optional

from ..config import (
    COMPONENT_TAGS,
    EXTRACT_BUFFER_SIZE,
    LARGE_ENTRY_LOG_SIZE,
    TAR_REPLAY_LIMIT,
    TAR_SUFFIXES,
)
from ..errors import DecodeError, DiskFullError, SamFirmError
from ..logging_setup import log
from .disk import is_disk_full, remove_partial
from .zipstream import ZipEntry, ZipStreamReader

_MB = 1024 * 1024


class ComponentFilter:
    """Selects archive entries whose file name starts with ``<TAG>_``.

    An empty filter selects everything.
    """

    def __init__(self, components: Optional[Iterable[str]] = None) -> None:
        self.tags = tuple(dict.fromkeys(c.strip().upper() for c in components or () if c.strip()))

    def __bool__(self) -> bool:
        return bool(self.tags)

    def __str__(self) -> str:
        return ", ".join(self.tags) if self.tags else "all"

    def matches(self, name: str) -> bool:
        if not self.tags:
            return True
        base = PurePosixPath(name.replace("\\", "/")).name.upper()
        return any(base.startswith(tag + "_") for tag in self.tags)


@dataclass
class ExtractionStats:
    extracted: int = 0
    skipped: int = 0
    tar_members: int = 0


class NonClosingReader(io.RawIOBase):
    """Read-only view of a stream whose ``close()`` leaves the stream open."""

    def __init__(self, source: BinaryIO) -> None:
        super().__init__()
        self._source = source

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        data = self._source.read(len(b))
        n = len(data)
        b[:n] = data
        return n


class RecordingReader(NonClosingReader):
    """NonClosingReader that keeps a copy of the first *limit* bytes it hands out."""

    def __init__(self, source: BinaryIO, limit: int = TAR_REPLAY_LIMIT) -> None:
        super().__init__(source)
        self._limit = limit
        self._recorded = bytearray()
        self.consumed = 0

    @property
    def replayable(self) -> bool:
        return self.consumed <= self._limit

    @property
    def recorded(self) -> bytes:
        return bytes(self._recorded)

    def readinto(self, b) -> int:
        n = super().readinto(b)
        if n and self.consumed < self._limit:
            room = self._limit - self.consumed
            self._recorded += bytes(b[:min(n, room)])
        self.consumed += n
        return n


def safe_join(dest: Path, name: str) -> Optional[Path]:
    """``dest / name`` unless *name* would escape *dest*."""
    parts = PurePosixPath(name.replace("\\", "/")).parts
    if not parts or parts[0] == "/" or ".." in parts or ":" in parts[0]:
        return None
    target = dest.joinpath(*parts)
    try:
        target.resolve().relative_to(dest.resolve())
    except ValueError:
        return None
    return target


def _is_tar(name: str) -> bool:
    return name.lower().endswith(TAR_SUFFIXES)


def _size_text(size: Optional[int]) -> str:
    return f"{size / _MB:.2f} MB" if size is not None else "size unknown"


def _write_entry(source: BinaryIO, target: Path, buffer: bytearray) -> int:
    """Copy *source* to *target* through the shared *buffer*.

    A full disk removes the partial file and raises :class:`DiskFullError`.
    """
    target.parent.mkdir(parents=True, exist_ok=True)
    view = memoryview(buffer)
    written = 0
    try:
        with open(target, "wb") as out:
            while True:
                n = source.readinto(view)
                if not n:
                    break
                out.write(view[:n])
                written += n
    except OSError as exc:
        remove_partial(target)
        if is_disk_full(exc):
            log.error("No space left on device while writing %s", target)
            raise DiskFullError(str(target)) from exc
        raise
    except SamFirmError:
        remove_partial(target)
        raise
    return written


def _extract_members(tar: tarfile.TarFile, dest: Path, buffer: bytearray) -> int:
    count = 0
    for member in tar:
        if not member.isfile():
            continue
        target = safe_join(dest, member.name)
        if target is None:
            log.warning("Skipping TAR member with unsafe path: %s", member.name)
            continue
        if member.size > LARGE_ENTRY_LOG_SIZE:
            log.info("    Extracting from TAR: %s (%s)", member.name, _size_text(member.size))
        fileobj = tar.extractfile(member)
        if fileobj is None:
            continue
        with fileobj:
            _write_entry(fileobj, target, buffer)
        count += 1
    return count


def _extract_tar_from_disk(path: Path, dest: Path, buffer: bytearray) -> int:
    with tarfile.open(path, mode="r:") as tar:
        return _extract_members(tar, dest, buffer)


def _extract_nested_tar(entry: ZipEntry, reader: BinaryIO, dest: Path, buffer: bytearray) -> int:
    """Unpack a nested tar from *reader*, falling back to a temporary file."""
    log.info("Extracting TAR archive: %s (streaming)", entry.name)
    recorder = RecordingReader(reader)
    try:
        with tarfile.open(fileobj=recorder, mode="r|") as tar:
            count = _extract_members(tar, dest, buffer)
        log.info("  Extracted %d file(s) from TAR (no intermediate file created)", count)
        return count
    except (tarfile.TarError, EOFError, OSError) as exc:
        log.warning("Failed to extract TAR stream %s: %s", entry.name, exc)

    if not recorder.replayable:
        log.error(
            "Fallback TAR extraction impossible for %s: %d bytes already consumed from the stream",
            entry.name, recorder.consumed,
        )
        raise DecodeError(
            f"TAR stream {entry.name} failed after {recorder.consumed} bytes and cannot be replayed"
        )

    log.info("Falling back to disk-based TAR extraction...")
    fd, tmp_name = tempfile.mkstemp(prefix=".samfirm_", suffix=".tar", dir=dest)
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        _write_entry(_Chained(recorder.recorded, reader), tmp_path, buffer)
        count = _extract_tar_from_disk(tmp_path, dest, buffer)
        log.info("  Extracted %d file(s) from TAR", count)
        return count
    except (tarfile.TarError, EOFError, OSError) as exc:
        log.warning("Fallback TAR extraction also failed for %s: %s", entry.name, exc)
        return 0
    finally:
        remove_partial(tmp_path)


class _Chained(io.RawIOBase):
    """Replay *prefix*, then continue with *rest*."""

    def __init__(self, prefix: bytes, rest: BinaryIO) -> None:
        super().__init__()
        self._prefix = memoryview(prefix)
        self._rest = rest

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        if self._prefix:
            n = min(len(b), len(self._prefix))
            b[:n] = self._prefix[:n]
            self._prefix = self._prefix[n:]
            return n
        data = self._rest.read(len(b))
        n = len(data)
        b[:n] = data
        return n


def extract_archive(
    stream: BinaryIO,
    dest: Path,
    components: Optional[ComponentFilter] = None,
) -> ExtractionStats:
    """Extract the decrypted ZIP *stream* into *dest*.

    Raises DecodeError on a corrupt archive and DiskFullError when the
    device fills up.  A filter that selects nothing is only a warning.
    """
    components = components or ComponentFilter()
    dest = Path(dest)
    dest.mkdir(parents=True, exist_ok=True)
    stats = ExtractionStats()
    buffer = bytearray(EXTRACT_BUFFER_SIZE)
    archive = ZipStreamReader(stream)

    for entry, reader in archive:
        if not components.matches(entry.name):
            stats.skipped += 1
            log.debug("  Skipping: %s", entry.name)
            continue

        target = safe_join(dest, entry.name)
        if target is None:
            log.warning("Skipping entry with unsafe path: %s", entry.name)
            stats.skipped += 1
            continue
        if entry.is_dir:
            target.mkdir(parents=True, exist_ok=True)
            continue

        log.info("  Extracting: %s (%s)", entry.name, _size_text(entry.size))
        if _is_tar(entry.name):
            members = _extract_nested_tar(entry, reader, dest, buffer)
            if not members:
                log.warning("No files extracted from %s", entry.name)
                continue
            stats.tar_members += members
        else:
            _write_entry(reader, target, buffer)
        stats.extracted += 1

    trailing = archive.drain()
    log.debug("Discarded %d trailing archive bytes", trailing)

    if stats.skipped:
        log.info("  Total files skipped: %d", stats.skipped)
    log.info("  Total files extracted: %d", stats.extracted)
    if components and stats.extracted == 0:
        log.warning("No files matched the selected components: %s", components)
        log.warning(
            "Firmware files should start with one of: %s",
            ", ".join(f"{tag}_" for tag in COMPONENT_TAGS),
        )
    return stats
