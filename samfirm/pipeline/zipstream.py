#!/usr/bin/env python3
"""Forward-only ZIP reader for non-seekable streams.

The decrypted firmware arrives as a pipe, so the central directory at the
end of the archive is never available.  Entries are read from their local
file headers instead::

    Offset  Size  Description
    0x00     4    signature  (PK\\x03\\x04)
    0x04     2    version needed
    0x06     2    flags      (bit 3 = sizes follow in a data descriptor)
    0x08     2    method     (0 stored, 8 deflate)
    0x0A     4    DOS time/date
    0x0E     4    CRC-32
    0x12     4    compressed size    (0xFFFFFFFF -> zip64 extra field)
    0x16     4    uncompressed size  (0xFFFFFFFF -> zip64 extra field)
    0x1A     2    file name length
    0x1C     2    extra field length

Deflate streams are self-terminating, so deflated entries with a data
descriptor can be read without knowing their size.  Stored entries with a
data descriptor cannot, and are rejected.
"""

from __future__ import annotations

import io
import struct
import zlib
from dataclasses import dataclass
from typing import BinaryIO, Iterator, Optional, Tuple

from ..errors import DecodeError

LOCAL_HEADER_SIG = 0x04034B50
DATA_DESCRIPTOR_SIG = 0x08074B50
# records that may legitimately follow the last local entry
TRAILER_SIGS = frozenset({
    0x02014B50,   # central directory file header
    0x06054B50,   # end of central directory
    0x06064B50,   # zip64 end of central directory
    0x07064B50,   # zip64 end of central directory locator
    0x05054B50,   # digital signature
    0x08064B50,   # archive extra data
})

_LOCAL_HEADER = struct.Struct("<IHHHHHIIIHH")
FLAG_ENCRYPTED = 0x0001
FLAG_DATA_DESCRIPTOR = 0x0008
FLAG_UTF8 = 0x0800
METHOD_STORED = 0
METHOD_DEFLATED = 8
ZIP64_EXTRA_ID = 0x0001
ZIP64_MARKER = 0xFFFFFFFF

_CHUNK = 64 * 1024


@dataclass
class ZipEntry:
    """Metadata from one local file header."""

    name: str
    method: int
    flags: int
    crc: int
    compressed_size: Optional[int]
    size: Optional[int]
    zip64: bool = False

    @property
    def is_dir(self) -> bool:
        return self.name.endswith("/")

    @property
    def has_data_descriptor(self) -> bool:
        return bool(self.flags & FLAG_DATA_DESCRIPTOR)


def _parse_zip64_extra(extra: bytes, size: int, csize: int) -> Tuple[int, int, bool]:
    pos = 0
    while pos + 4 <= len(extra):
        tag, length = struct.unpack_from("<HH", extra, pos)
        body = extra[pos + 4 : pos + 4 + length]
        if tag == ZIP64_EXTRA_ID:
            off = 0
            if size == ZIP64_MARKER and off + 8 <= len(body):
                size = struct.unpack_from("<Q", body, off)[0]
                off += 8
            if csize == ZIP64_MARKER and off + 8 <= len(body):
                csize = struct.unpack_from("<Q", body, off)[0]
            return size, csize, True
        pos += 4 + length
    return size, csize, False


class ZipEntryStream(io.RawIOBase):
    """Decompressed bytes of the current entry, read straight from the archive stream."""

    def __init__(self, archive: "ZipStreamReader", entry: ZipEntry) -> None:
        super().__init__()
        self._archive = archive
        self.entry = entry
        self._remaining = entry.compressed_size      # None when only a descriptor knows it
        self._inflater = zlib.decompressobj(-15) if entry.method == METHOD_DEFLATED else None
        self._out = bytearray()
        self._crc = 0
        self._produced = 0
        self._finished = False
        self._verify = True

    def readable(self) -> bool:
        return True

    # -- compressed input ------------------------------------------------

    def _pull(self, n: int) -> bytes:
        if self._remaining is None:
            return self._archive._read(n)
        n = min(n, self._remaining)
        if not n:
            return b""
        data = self._archive._read(n)
        self._remaining -= len(data)
        return data

    # -- output ----------------------------------------------------------

    def _produce_stored(self, want: int) -> bytes:
        if self._remaining == 0:
            self._complete()
            return b""
        data = self._pull(want)
        if not data:
            raise DecodeError(f"Truncated archive entry {self.entry.name!r}")
        self._account(data)
        if self._remaining == 0:
            self._complete()
        return data

    def _produce_deflated(self, want: int) -> bytes:
        inflater = self._inflater
        while not self._out and not self._finished:
            data = inflater.unconsumed_tail or self._pull(_CHUNK)
            if not data:
                raise DecodeError(f"Truncated deflate data in {self.entry.name!r}")
            try:
                self._out += inflater.decompress(data, want)
            except zlib.error as exc:
                raise DecodeError(f"Corrupt deflate data in {self.entry.name!r}: {exc}") from exc
            if inflater.eof:
                if self._remaining is None and inflater.unused_data:
                    self._archive._unread(inflater.unused_data)
                self._finished_inflate()
        out = bytes(self._out[:want])
        del self._out[:want]
        return out

    def _finished_inflate(self) -> None:
        self._finished = True
        if self._remaining:
            # padding inside the declared compressed size
            self._archive._discard(self._remaining)
            self._remaining = 0

    def _account(self, data: bytes) -> None:
        self._crc = zlib.crc32(data, self._crc)
        self._produced += len(data)

    def _complete(self) -> None:
        self._finished = True
        if self.entry.has_data_descriptor:
            crc, size = self._archive._read_descriptor(self.entry.zip64)
        else:
            crc, size = self.entry.crc, self.entry.size
        if not self._verify:
            return
        if size is not None and size != self._produced:
            raise DecodeError(
                f"Size mismatch in {self.entry.name!r}: expected {size}, got {self._produced}"
            )
        if crc != self._crc:
            raise DecodeError(f"CRC-32 mismatch in {self.entry.name!r}")

    def readinto(self, b) -> int:
        want = len(b)
        if not want or (self._finished and not self._out):
            return 0
        if self._inflater is None:
            data = self._produce_stored(want)
        else:
            data = self._produce_deflated(want)
            self._account(data)
            if self._finished and not self._out:
                self._finished = False
                self._complete()
        n = len(data)
        b[:n] = data
        return n

    def skip(self) -> None:
        """Consume whatever is left of the entry.

        With a known compressed size the bytes are discarded without being
        inflated; otherwise the deflate stream has to be walked to find its end.
        """
        if self._finished and not self._out:
            return
        if self._remaining is not None:
            self._verify = False
            self._archive._discard(self._remaining)
            self._remaining = 0
            self._out.clear()
            self._complete()
            return
        while self.readinto(bytearray(_CHUNK)):
            pass


class ZipStreamReader:
    """Iterate ``(ZipEntry, ZipEntryStream)`` pairs from a forward-only stream.

    Each entry stream is only valid until the next iteration step, which
    skips whatever the caller left unread.
    """

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream
        self._pushback = bytearray()
        self._current: Optional[ZipEntryStream] = None
        self.entries_read = 0

    # -- raw stream helpers ----------------------------------------------

    def _read(self, n: int) -> bytes:
        if self._pushback:
            data = bytes(self._pushback[:n])
            del self._pushback[:n]
            return data
        return self._stream.read(n)

    def _read_exact(self, n: int, what: str) -> bytes:
        buf = bytearray()
        while len(buf) < n:
            data = self._read(n - len(buf))
            if not data:
                raise DecodeError(f"Unexpected end of archive while reading {what}")
            buf += data
        return bytes(buf)

    def _unread(self, data: bytes) -> None:
        self._pushback[:0] = data

    def _discard(self, n: int) -> None:
        while n > 0:
            data = self._read(min(n, _CHUNK))
            if not data:
                raise DecodeError("Unexpected end of archive while skipping entry data")
            n -= len(data)

    def _read_descriptor(self, zip64: bool) -> Tuple[int, int]:
        head = self._read_exact(4, "data descriptor")
        if struct.unpack("<I", head)[0] != DATA_DESCRIPTOR_SIG:
            self._unread(head)
        crc = struct.unpack("<I", self._read_exact(4, "data descriptor"))[0]
        fmt = "<QQ" if zip64 else "<II"
        _csize, size = struct.unpack(fmt, self._read_exact(struct.calcsize(fmt), "data descriptor"))
        return crc, size

    # -- iteration -------------------------------------------------------

    def _next_header(self) -> Optional[ZipEntry]:
        sig_bytes = self._read(4)
        if not sig_bytes:
            if self.entries_read == 0:
                raise DecodeError("Decrypted stream is empty")
            raise DecodeError("Unexpected end of archive before the central directory")
        if len(sig_bytes) < 4:
            sig_bytes += self._read_exact(4 - len(sig_bytes), "entry signature")
        sig = struct.unpack("<I", sig_bytes)[0]
        if sig != LOCAL_HEADER_SIG:
            if self.entries_read == 0:
                raise DecodeError("Stream is not a ZIP archive (wrong decryption key?)")
            if sig not in TRAILER_SIGS:
                raise DecodeError(f"Unexpected record 0x{sig:08x} after entry {self.entries_read}")
            return None

        rest = self._read_exact(_LOCAL_HEADER.size - 4, "local file header")
        (_sig, _ver, flags, method, _time, _date, crc, csize, size,
         name_len, extra_len) = _LOCAL_HEADER.unpack(sig_bytes + rest)
        raw_name = self._read_exact(name_len, "file name")
        extra = self._read_exact(extra_len, "extra field")
        name = raw_name.decode("utf-8" if flags & FLAG_UTF8 else "cp437")

        if flags & FLAG_ENCRYPTED:
            raise DecodeError(f"Encrypted ZIP entry {name!r} is not supported")
        if method not in (METHOD_STORED, METHOD_DEFLATED):
            raise DecodeError(f"Unsupported compression method {method} for {name!r}")

        size, csize, zip64 = _parse_zip64_extra(extra, size, csize)
        entry = ZipEntry(name=name, method=method, flags=flags, crc=crc,
                         compressed_size=csize, size=size, zip64=zip64)
        if entry.has_data_descriptor:
            if method == METHOD_STORED:
                raise DecodeError(f"Stored entry {name!r} with a data descriptor cannot be streamed")
            entry.crc, entry.compressed_size, entry.size = 0, None, None
        self.entries_read += 1
        return entry

    def __iter__(self) -> Iterator[Tuple[ZipEntry, ZipEntryStream]]:
        while True:
            if self._current is not None:
                self._current.skip()
                self._current.close()
                self._current = None
            entry = self._next_header()
            if entry is None:
                return
            self._current = ZipEntryStream(self, entry)
            yield entry, self._current

    def drain(self) -> int:
        """Read the rest of the underlying stream (central directory), returning its length."""
        total = len(self._pushback)
        self._pushback.clear()
        while True:
            data = self._stream.read(_CHUNK)
            if not data:
                return total
            total += len(data)
