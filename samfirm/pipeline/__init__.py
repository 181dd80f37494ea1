"""Acquisition pipeline: download, decrypt, unzip and untar the firmware binary."""

from samfirm.pipeline.acquire import (
    acquire_binary,
    download_via_aria2,
    extract_downloaded_file,
    stream_and_extract,
)
from samfirm.pipeline.cipher import DecryptingReader, ProgressReader, derive_key
from samfirm.pipeline.disk import is_disk_full, remove_partial
from samfirm.pipeline.extract import (
    ComponentFilter,
    ExtractionStats,
    NonClosingReader,
    RecordingReader,
    extract_archive,
    safe_join,
)
from samfirm.pipeline.fallback import Aria2Transport, cleanup_partial_download
from samfirm.pipeline.result import StageResult
from samfirm.pipeline.zipstream import ZipEntry, ZipStreamReader

__all__ = [
    "acquire_binary",
    "download_via_aria2",
    "extract_downloaded_file",
    "stream_and_extract",
    "DecryptingReader",
    "ProgressReader",
    "derive_key",
    "is_disk_full",
    "remove_partial",
    "ComponentFilter",
    "ExtractionStats",
    "NonClosingReader",
    "RecordingReader",
    "extract_archive",
    "safe_join",
    "Aria2Transport",
    "cleanup_partial_download",
    "StageResult",
    "ZipEntry",
    "ZipStreamReader",
]
