"""Disk-full detection and partial-file removal."""

import errno
from pathlib import Path

from ..logging_setup import log

_WINDOWS_DISK_FULL = (112, 39)        # ERROR_DISK_FULL, ERROR_HANDLE_DISK_FULL
_HRESULT_DISK_FULL = 0x80070070
_DISK_FULL_MESSAGES = ("no space left on device", "not enough space", "disk is full")


def is_disk_full(exc: BaseException) -> bool:
    """True when *exc* means the target device has no space left."""
    if not isinstance(exc, OSError):
        return False
    if exc.errno == errno.ENOSPC:
        return True
    winerror = getattr(exc, "winerror", None)
    if winerror is not None and (winerror in _WINDOWS_DISK_FULL
                                 or winerror & 0xFFFFFFFF == _HRESULT_DISK_FULL):
        return True
    message = str(exc).lower()
    return any(text in message for text in _DISK_FULL_MESSAGES)


def remove_partial(path: Path) -> None:
    """Delete a partially written file; failures are only logged."""
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        log.warning("Could not remove partial file %s: %s", path, exc)
    else:
        log.debug("Removed partial file %s", path)
