"""Streaming AES decryption of the downloaded firmware archive.

The archive is AES-128 in ECB mode: every 16-byte block decrypts on its
own, so ciphertext can be consumed chunk by chunk.  PKCS#7 padding sits in
the final block, which is therefore held back until the source hits EOF.
"""

from __future__ import annotations

import hashlib
import io
from typing import BinaryIO, Optional

from Crypto.Cipher import AES
from Crypto.Util.Padding import unpad

from ..collaborators import CryptoProvider
from ..config import READ_CHUNK_SIZE
from ..errors import DecodeError

try:
    from tqdm import tqdm as _tqdm
    _TQDM_AVAILABLE = True
except ImportError:
    _TQDM_AVAILABLE = False


def derive_key(version: str, logic_value: str, crypto: CryptoProvider) -> bytes:
    """MD5 of the logic check over ``(version, logic_value)``: a 16-byte AES key."""
    logic_check = crypto.logic_check(version, logic_value)
    return hashlib.md5(logic_check.encode("ascii")).digest()


class DecryptingReader(io.RawIOBase):
    """Read-only view of *source* with the ciphertext decrypted on the fly.

    *source* is borrowed: closing the reader leaves it open.
    """

    def __init__(self, source: BinaryIO, key: bytes, chunk_size: int = READ_CHUNK_SIZE) -> None:
        super().__init__()
        self._source = source
        self._cipher = AES.new(key, AES.MODE_ECB)
        self._chunk_size = chunk_size
        self._pending = b""          # ciphertext tail not yet block aligned
        self._held = b""             # last decrypted block, may carry padding
        self._plain = bytearray()
        self._eof = False

    def readable(self) -> bool:
        return True

    def _finish(self) -> None:
        self._eof = True
        if self._pending:
            raise DecodeError(
                f"Ciphertext length is not a multiple of {AES.block_size} bytes "
                f"({len(self._pending)} trailing bytes)"
            )
        if self._held:
            try:
                self._plain += unpad(self._held, AES.block_size)
            except ValueError as exc:
                raise DecodeError(f"Invalid padding in final block (wrong key?): {exc}") from exc
            self._held = b""

    def _fill(self, want: int) -> None:
        while len(self._plain) < want and not self._eof:
            chunk = self._source.read(self._chunk_size)
            if not chunk:
                self._finish()
                break
            data = self._pending + chunk
            aligned = len(data) - len(data) % AES.block_size
            self._pending = data[aligned:]
            if not aligned:
                continue
            decrypted = self._cipher.decrypt(data[:aligned])
            self._plain += self._held
            self._plain += decrypted[:-AES.block_size]
            self._held = decrypted[-AES.block_size:]

    def readinto(self, b) -> int:
        want = len(b)
        if not want:
            return 0
        self._fill(want)
        take = min(want, len(self._plain))
        b[:take] = self._plain[:take]
        del self._plain[:take]
        return take


class ProgressReader(io.RawIOBase):
    """Pass-through reader that advances a tqdm byte counter when tqdm is installed."""

    def __init__(self, source: BinaryIO, total: Optional[int] = None, desc: str = "Downloading") -> None:
        super().__init__()
        self._source = source
        self.consumed = 0
        self._bar = _tqdm(
            total=total, unit="B", unit_scale=True, unit_divisor=1024, desc=desc, leave=False
        ) if _TQDM_AVAILABLE else None

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        data = self._source.read(len(b))
        n = len(data)
        b[:n] = data
        self.consumed += n
        if self._bar is not None:
            self._bar.update(n)
        return n

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None
        super().close()
