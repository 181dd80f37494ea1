"""Exception hierarchy for samfirm."""

from __future__ import annotations

from typing import Optional


class SamFirmError(Exception):
    """Base class for every fatal pipeline error."""


class ConfigurationError(SamFirmError):
    """A required collaborator or setting is missing."""


class TransportError(SamFirmError):
    """Network failure, timeout or non-2xx status from an endpoint."""

    def __init__(self, endpoint: str, status: Optional[int], detail: str = "") -> None:
        self.endpoint = endpoint
        self.status = status
        msg = f"{endpoint} failed (status {status})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class ProtocolError(SamFirmError):
    """Malformed or incomplete FUS response, or an out-of-order request."""


class ResolutionError(SamFirmError):
    """The version digest search ended without the required match."""

    def __init__(self, message: str, matched: int = 0, total: int = 0) -> None:
        self.matched = matched
        self.total = total
        if total:
            message = f"{message} ({matched}/{total} digests matched, {total - matched} outstanding)"
        super().__init__(message)


class DiskFullError(SamFirmError):
    """Writing an extracted file failed because the device is full."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"No space left on device: '{path}'")


class ExternalToolError(SamFirmError):
    """The external downloader is unavailable or misbehaved."""

    def __init__(self, tool: str, detail: str, exit_code: Optional[int] = None) -> None:
        self.tool = tool
        self.exit_code = exit_code
        super().__init__(f"{tool}: {detail}")


class DecodeError(SamFirmError):
    """Decryption or decompression of the firmware stream failed."""


class AcquisitionError(SamFirmError):
    """Both the streaming path and the fallback transport failed."""

    def __init__(self, streaming_error: str, fallback_error: str) -> None:
        self.streaming_error = streaming_error
        self.fallback_error = fallback_error
        super().__init__(
            "All download methods failed "
            f"(streaming: {streaming_error}; aria2c: {fallback_error})"
        )
