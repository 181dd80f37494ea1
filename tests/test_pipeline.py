"""
Tests for the acquisition pipeline – AES stream decryption, the forward-only
ZIP reader, extraction with nested tars, and disk-full handling.
"""

import builtins
import errno
import hashlib
import io
import tarfile
import tempfile
import unittest
import zipfile
from pathlib import Path
from unittest.mock import MagicMock, patch

from Crypto.Cipher import AES
from Crypto.Util.Padding import pad

from samfirm.errors import DecodeError, DiskFullError
from samfirm.pipeline.cipher import DecryptingReader, derive_key
from samfirm.pipeline.disk import is_disk_full
from samfirm.pipeline.extract import (
    ComponentFilter,
    NonClosingReader,
    RecordingReader,
    extract_archive,
    safe_join,
)
from samfirm.pipeline.zipstream import ZipStreamReader

VERSION = "S916BXXU3AXK1/S916BOXM3AXK1/S916BXXU3AXK1"
LOGIC_VALUE = "0123456789abcdef"


class FakeCrypto:
    def decrypt_nonce(self, nonce):
        return nonce

    def signature(self, nonce_decrypted):
        return nonce_decrypted

    def logic_check(self, value, logic):
        return f"{value[:8]}{logic[:8]}"


KEY = derive_key(VERSION, LOGIC_VALUE, FakeCrypto())


class _Unseekable(io.RawIOBase):
    """Write-only sink that makes zipfile emit data descriptors."""

    def __init__(self):
        super().__init__()
        self.data = bytearray()

    def writable(self):
        return True

    def write(self, b):
        self.data += b
        return len(b)


def make_tar(files):
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        for name, content in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            tar.addfile(info, io.BytesIO(content))
    return buf.getvalue()


def make_tar_md5(files, name):
    data = make_tar(files)
    return data + f"{hashlib.md5(data).hexdigest()}  {name}\n".encode()


def make_zip(entries, compression=zipfile.ZIP_DEFLATED, streamed=False):
    sink = _Unseekable() if streamed else io.BytesIO()
    with zipfile.ZipFile(sink, "w", compression=compression) as zf:
        for name, content in entries.items():
            zf.writestr(name, content)
    return bytes(sink.data) if streamed else sink.getvalue()


def encrypt(data, key=KEY):
    return AES.new(key, AES.MODE_ECB).encrypt(pad(data, AES.block_size))


def firmware_zip():
    ap = make_tar_md5({"boot.img": b"B" * 5000, "super.img": b"S" * 70000}, "AP_S916B.tar")
    bl = make_tar_md5({"sboot.bin": b"L" * 1000}, "BL_S916B.tar")
    return make_zip({
        "AP_S916B.tar.md5": ap,
        "BL_S916B.tar.md5": bl,
        "CSC_OXM_S916B.tar.md5": make_tar_md5({"cache.img": b"C" * 300}, "CSC_OXM_S916B.tar"),
        "readme.txt": b"firmware\n",
    })


def files_under(path):
    return sorted(p.relative_to(path).as_posix() for p in Path(path).rglob("*") if p.is_file())


class TestDecryptingReader(unittest.TestCase):
    def test_derive_key_is_md5_of_logic_check(self):
        expected = hashlib.md5(b"S916BXXU01234567").digest()
        self.assertEqual(KEY, expected)
        self.assertEqual(len(KEY), 16)

    def test_round_trip(self):
        plain = bytes(range(256)) * 1000 + b"tail"
        reader = DecryptingReader(io.BytesIO(encrypt(plain)), KEY, chunk_size=1000)
        self.assertEqual(reader.read(), plain)

    def test_block_aligned_plaintext(self):
        plain = b"x" * 64
        reader = DecryptingReader(io.BytesIO(encrypt(plain)), KEY, chunk_size=7)
        self.assertEqual(reader.read(), plain)

    def test_small_reads(self):
        plain = b"0123456789" * 50
        reader = DecryptingReader(io.BytesIO(encrypt(plain)), KEY, chunk_size=33)
        out = bytearray()
        while True:
            chunk = reader.read(13)
            if not chunk:
                break
            out += chunk
        self.assertEqual(bytes(out), plain)

    def test_truncated_ciphertext(self):
        reader = DecryptingReader(io.BytesIO(encrypt(b"abc" * 20)[:-3]), KEY)
        with self.assertRaises(DecodeError):
            reader.read()

    def test_invalid_padding(self):
        # final block decrypts to zeros, which is not PKCS#7
        ciphertext = AES.new(KEY, AES.MODE_ECB).encrypt(b"\x07" * 16 + b"\x00" * 16)
        reader = DecryptingReader(io.BytesIO(ciphertext), KEY)
        with self.assertRaises(DecodeError):
            reader.read()

    def test_source_left_open(self):
        source = io.BytesIO(encrypt(b"data"))
        with DecryptingReader(source, KEY) as reader:
            reader.read()
        self.assertFalse(source.closed)


class TestZipStreamReader(unittest.TestCase):
    def test_stored_entries(self):
        data = make_zip({"a.txt": b"hello", "b.bin": b"\x00" * 10000}, compression=zipfile.ZIP_STORED)
        names = {}
        for entry, reader in ZipStreamReader(io.BytesIO(data)):
            names[entry.name] = reader.read()
        self.assertEqual(names, {"a.txt": b"hello", "b.bin": b"\x00" * 10000})

    def test_data_descriptor_entries(self):
        content = b"streamed content " * 4000
        data = make_zip({"AP_X.bin": content, "BL_X.bin": b"bl"}, streamed=True)
        archive = ZipStreamReader(io.BytesIO(data))
        entries = [(entry, reader.read()) for entry, reader in archive]
        self.assertTrue(entries[0][0].has_data_descriptor)
        self.assertEqual(entries[0][1], content)
        self.assertEqual(entries[1][1], b"bl")

    def test_unread_entries_skipped(self):
        data = make_zip({"one.bin": b"1" * 50000, "two.bin": b"2" * 10})
        archive = ZipStreamReader(io.BytesIO(data))
        seen = []
        for entry, reader in archive:
            if entry.name == "two.bin":
                seen.append(reader.read())
        self.assertEqual(seen, [b"2" * 10])

    def test_closing_entry_keeps_archive_readable(self):
        data = make_zip({"one.bin": b"1" * 50000, "two.bin": b"2" * 10})
        source = io.BytesIO(data)
        seen = {}
        for entry, reader in ZipStreamReader(source):
            if entry.name == "one.bin":
                reader.read(100)
                reader.close()
                self.assertTrue(reader.closed)
            else:
                seen[entry.name] = reader.read()
        self.assertEqual(seen, {"two.bin": b"2" * 10})
        self.assertFalse(source.closed)

    def test_unread_entries_are_not_inflated(self):
        data = make_zip({"one.bin": b"1" * 50000, "two.bin": b"2" * 10})
        inflater = MagicMock()
        with patch("samfirm.pipeline.zipstream.zlib.decompressobj", return_value=inflater):
            names = [entry.name for entry, _ in ZipStreamReader(io.BytesIO(data))]
        self.assertEqual(names, ["one.bin", "two.bin"])
        inflater.decompress.assert_not_called()

    def test_crc_mismatch(self):
        data = make_zip({"a.txt": b"hello world"}, compression=zipfile.ZIP_STORED)
        corrupt = data.replace(b"hello world", b"hellO world", 1)
        with self.assertRaises(DecodeError):
            for _, reader in ZipStreamReader(io.BytesIO(corrupt)):
                reader.read()

    def test_not_a_zip(self):
        with self.assertRaises(DecodeError):
            list(ZipStreamReader(io.BytesIO(b"garbage" * 10)))

    def test_truncated_archive(self):
        data = make_zip({"a.bin": bytes(range(256)) * 100}, compression=zipfile.ZIP_STORED)
        with self.assertRaises(DecodeError):
            for _, reader in ZipStreamReader(io.BytesIO(data[:2000])):
                reader.read()

    def test_drain_consumes_central_directory(self):
        data = make_zip({"a.txt": b"a"})
        stream = io.BytesIO(data)
        archive = ZipStreamReader(stream)
        list(archive)
        archive.drain()
        self.assertEqual(stream.read(), b"")


class TestReaders(unittest.TestCase):
    def test_non_closing_reader(self):
        source = io.BytesIO(b"abc")
        reader = NonClosingReader(source)
        self.assertEqual(reader.read(2), b"ab")
        reader.close()
        self.assertFalse(source.closed)
        self.assertFalse(reader.writable())

    def test_recording_reader_replay_limit(self):
        reader = RecordingReader(io.BytesIO(b"x" * 100), limit=40)
        reader.read(30)
        self.assertTrue(reader.replayable)
        self.assertEqual(reader.recorded, b"x" * 30)
        reader.read(30)
        self.assertFalse(reader.replayable)
        self.assertEqual(len(reader.recorded), 40)


class TestComponentFilter(unittest.TestCase):
    def test_empty_matches_everything(self):
        self.assertTrue(ComponentFilter().matches("anything.bin"))
        self.assertFalse(ComponentFilter())

    def test_case_insensitive_prefix(self):
        components = ComponentFilter(["ap", "HOME_CSC"])
        self.assertTrue(components.matches("AP_S916B.tar.md5"))
        self.assertTrue(components.matches("home_csc_OXM_S916B.tar.md5"))
        self.assertFalse(components.matches("CSC_OXM_S916B.tar.md5"))
        self.assertFalse(components.matches("APPLE.txt"))

    def test_safe_join(self):
        dest = Path(tempfile.gettempdir()) / "samfirm-out"
        self.assertEqual(safe_join(dest, "a/b.img"), dest / "a" / "b.img")
        self.assertIsNone(safe_join(dest, "../evil.img"))
        self.assertIsNone(safe_join(dest, "/etc/passwd"))
        self.assertIsNone(safe_join(dest, "a/../../evil.img"))


class TestExtractArchive(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.dest = Path(self._tmp.name) / "out"

    def tearDown(self):
        self._tmp.cleanup()

    def _decrypt_and_extract(self, zip_bytes, components=None):
        reader = DecryptingReader(io.BytesIO(encrypt(zip_bytes)), KEY)
        return extract_archive(reader, self.dest, components)

    def test_full_round_trip(self):
        stats = self._decrypt_and_extract(firmware_zip())
        self.assertEqual(stats.extracted, 4)
        self.assertEqual(stats.skipped, 0)
        self.assertEqual(stats.tar_members, 4)
        self.assertEqual(
            files_under(self.dest),
            ["boot.img", "cache.img", "readme.txt", "sboot.bin", "super.img"],
        )
        self.assertEqual((self.dest / "super.img").read_bytes(), b"S" * 70000)

    def test_component_filter(self):
        stats = self._decrypt_and_extract(firmware_zip(), ComponentFilter(["BL"]))
        self.assertEqual(stats.extracted, 1)
        self.assertEqual(stats.skipped, 3)
        self.assertEqual(files_under(self.dest), ["sboot.bin"])

    def test_zero_match_filter_warns(self):
        with self.assertLogs("samfirm", level="WARNING") as logs:
            stats = self._decrypt_and_extract(firmware_zip(), ComponentFilter(["CP"]))
        self.assertEqual(stats.extracted, 0)
        self.assertEqual(files_under(self.dest), [])
        self.assertTrue(any("No files matched" in line for line in logs.output))
        self.assertFalse(any(line.startswith("ERROR") for line in logs.output))

    def test_wrong_key(self):
        reader = DecryptingReader(io.BytesIO(encrypt(firmware_zip())), b"\x01" * 16)
        with self.assertRaises(DecodeError):
            extract_archive(reader, self.dest)

    def test_path_traversal_skipped(self):
        data = make_zip({"../evil.txt": b"x", "ok.txt": b"y"})
        with self.assertLogs("samfirm", level="WARNING"):
            stats = extract_archive(io.BytesIO(data), self.dest)
        self.assertEqual(stats.extracted, 1)
        self.assertFalse((self.dest.parent / "evil.txt").exists())
        self.assertEqual(files_under(self.dest), ["ok.txt"])

    def test_corrupt_nested_tar_is_warning(self):
        data = make_zip({"AP_broken.tar": b"this is not a tar archive " * 100, "ok.txt": b"y"})
        with self.assertLogs("samfirm", level="WARNING") as logs:
            stats = extract_archive(io.BytesIO(data), self.dest)
        self.assertEqual(stats.tar_members, 0)
        self.assertEqual(stats.extracted, 1)
        self.assertEqual(files_under(self.dest), ["ok.txt"])
        self.assertTrue(any("Fallback TAR extraction also failed" in line for line in logs.output))

    def test_nested_tar_disk_fallback(self):
        data = make_zip({"AP_S916B.tar.md5": make_tar_md5({"boot.img": b"B" * 3000}, "AP_S916B.tar")})
        real_open = tarfile.open

        def flaky_open(*args, **kwargs):
            if kwargs.get("mode") == "r|":
                kwargs["fileobj"].read(512)
                raise tarfile.ReadError("simulated stream failure")
            return real_open(*args, **kwargs)

        with patch.object(tarfile, "open", side_effect=flaky_open):
            with self.assertLogs("samfirm", level="WARNING"):
                stats = extract_archive(io.BytesIO(data), self.dest)
        self.assertEqual(stats.tar_members, 1)
        self.assertEqual((self.dest / "boot.img").read_bytes(), b"B" * 3000)
        self.assertEqual(list(self.dest.glob(".samfirm_*")), [])

    def test_tar_failure_past_replay_limit_raises(self):
        big = make_tar_md5({"super.img": b"S" * (3 * 1024 * 1024)}, "AP_S916B.tar")
        data = make_zip({"AP_S916B.tar.md5": big, "ok.txt": b"y"})
        real_open = tarfile.open

        def fail_after_2mib(*args, **kwargs):
            if kwargs.get("mode") == "r|":
                fileobj, consumed = kwargs["fileobj"], 0
                while consumed < 2 * 1024 * 1024:
                    chunk = fileobj.read(64 * 1024)
                    if not chunk:
                        break
                    consumed += len(chunk)
                raise tarfile.ReadError("simulated stream failure")
            return real_open(*args, **kwargs)

        with patch.object(tarfile, "open", side_effect=fail_after_2mib):
            with self.assertLogs("samfirm", level="WARNING"):
                with self.assertRaises(DecodeError) as ctx:
                    extract_archive(io.BytesIO(data), self.dest)
        self.assertIn("AP_S916B.tar.md5", str(ctx.exception))
        self.assertEqual(files_under(self.dest), [])

    def test_disk_full_leaves_no_partial_file(self):
        class _FullDisk:
            def __init__(self, fh):
                self._fh = fh

            def __enter__(self):
                return self

            def __exit__(self, *exc):
                self._fh.close()
                return False

            def write(self, data):
                self._fh.write(bytes(data[:10]))
                raise OSError(errno.ENOSPC, "No space left on device")

        def full_disk_open(path, mode="r", *args, **kwargs):
            return _FullDisk(builtins.open(path, mode, *args, **kwargs))

        data = make_zip({"AP_S916B.bin": b"A" * 20000})
        with patch("samfirm.pipeline.extract.open", full_disk_open, create=True):
            with self.assertRaises(DiskFullError) as ctx:
                extract_archive(io.BytesIO(data), self.dest)
        self.assertIn("AP_S916B.bin", ctx.exception.path)
        self.assertEqual(files_under(self.dest), [])


class TestDiskFull(unittest.TestCase):
    def test_enospc(self):
        self.assertTrue(is_disk_full(OSError(errno.ENOSPC, "No space left on device")))

    def test_windows_message(self):
        self.assertTrue(is_disk_full(OSError("There is not enough space on the disk")))

    def test_windows_error_code(self):
        exc = OSError("write failed")
        exc.winerror = 112
        self.assertTrue(is_disk_full(exc))

    def test_hresult(self):
        exc = OSError("write failed")
        exc.winerror = -2147024784  # 0x80070070 as a signed int
        self.assertTrue(is_disk_full(exc))

    def test_other_errors(self):
        self.assertFalse(is_disk_full(PermissionError(errno.EACCES, "Permission denied")))
        self.assertFalse(is_disk_full(ValueError("No space left on device")))


if __name__ == "__main__":
    unittest.main()
