"""
Fallback transport: the encrypted archive is fetched to disk by ``aria2c``.

aria2c reads all of its options, including the signed ``Authorization``
header, from a throwaway ``.aria2_<hex>.conf`` written next to the output
file.  The config is removed whatever the outcome.
"""

from __future__ import annotations

import subprocess
import uuid
from pathlib import Path
from typing import Dict, List, Optional

from ..config import (
    ARIA2_CONNECT_TIMEOUT,
    ARIA2_CONNECTIONS,
    ARIA2_MAX_TRIES,
    ARIA2_MIN_SPLIT_SIZE,
    ARIA2_PROCESS_TIMEOUT,
    ARIA2_RETRY_WAIT,
    ARIA2_TIMEOUT,
    ARIA2C_BINARY,
)
from ..errors import ExternalToolError
from ..logging_setup import done, log
from .disk import remove_partial
from .result import StageResult

_CLEANUP_PATTERNS = ("*.enc*", "*.aria2", ".aria2_*.conf")


class Aria2Transport:
    """Runs ``aria2c`` once per download with a generated config file."""

    def __init__(self, binary: str = ARIA2C_BINARY, timeout: float = ARIA2_PROCESS_TIMEOUT) -> None:
        self.binary = binary
        self.timeout = timeout

    @staticmethod
    def build_config(output: Path, headers: Dict[str, str]) -> List[str]:
        lines = [
            "continue=true",
            f"max-connection-per-server={ARIA2_CONNECTIONS}",
            f"split={ARIA2_CONNECTIONS}",
            f"min-split-size={ARIA2_MIN_SPLIT_SIZE}",
            "max-download-limit=0",
            f"max-tries={ARIA2_MAX_TRIES}",
            f"retry-wait={ARIA2_RETRY_WAIT}",
            f"timeout={ARIA2_TIMEOUT}",
            f"connect-timeout={ARIA2_CONNECT_TIMEOUT}",
            "allow-overwrite=true",
            "auto-file-renaming=false",
            "disable-ipv6=true",
            "no-conf=true",
            "file-allocation=none",
            "console-log-level=warn",
            f"dir={output.parent}",
            f"out={output.name}",
        ]
        lines.extend(f"header={name}: {value}" for name, value in headers.items())
        return lines

    def write_config(self, output: Path, headers: Dict[str, str]) -> Path:
        config = output.parent / f".aria2_{uuid.uuid4().hex}.conf"
        config.write_text("\n".join(self.build_config(output, headers)) + "\n", encoding="utf-8")
        return config

    def _run(self, url: str, config: Path, output: Path) -> None:
        cmd = [self.binary, f"--conf-path={config}", url]
        log.debug("Running: %s --conf-path=%s <url>", self.binary, config.name)
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except FileNotFoundError as exc:
            raise ExternalToolError(self.binary, "not found; install aria2 or put it on PATH") from exc
        except subprocess.TimeoutExpired as exc:
            raise ExternalToolError(
                self.binary, f"timed out after {self.timeout:.0f}s downloading {output.name}"
            ) from exc
        except OSError as exc:
            raise ExternalToolError(self.binary, f"failed to start: {exc}") from exc

        if proc.returncode != 0:
            detail = (proc.stderr or proc.stdout or "").strip().splitlines()
            reason = f"exited with code {proc.returncode} for {output.name}"
            if detail:
                reason += f" ({detail[-1]})"
            raise ExternalToolError(self.binary, reason, exit_code=proc.returncode)

        if not output.is_file() or output.stat().st_size == 0:
            raise ExternalToolError(self.binary, f"reported success but {output.name} is missing or empty")

    def download(self, url: str, output: Path, headers: Dict[str, str]) -> StageResult:
        """Download *url* into *output*; never raises, the outcome is the StageResult."""
        output = Path(output)
        output.parent.mkdir(parents=True, exist_ok=True)
        config: Optional[Path] = None
        try:
            config = self.write_config(output, headers)
            log.info("Downloading %s with %s (%d connections)...", output.name, self.binary, ARIA2_CONNECTIONS)
            self._run(url, config, output)
        except ExternalToolError as exc:
            log.warning("%s", exc)
            return StageResult.failure(str(exc))
        except OSError as exc:
            log.warning("Could not prepare %s download: %s", self.binary, exc)
            return StageResult.failure(f"{self.binary}: {exc}")
        finally:
            if config is not None:
                remove_partial(config)
        done(f"Downloaded {output.name} ({output.stat().st_size} bytes)")
        return StageResult.success()


def cleanup_partial_download(encrypted_path: Path, directory: Optional[Path] = None) -> int:
    """Remove the encrypted download and aria2 leftovers; returns how many files went."""
    encrypted_path = Path(encrypted_path)
    directory = Path(directory) if directory is not None else encrypted_path.parent
    log.info("Cleaning up temporary files...")

    candidates = [encrypted_path, encrypted_path.with_name(encrypted_path.name + ".aria2")]
    if directory.is_dir():
        for pattern in _CLEANUP_PATTERNS:
            candidates.extend(sorted(directory.glob(pattern)))

    removed = 0
    for path in dict.fromkeys(candidates):
        if not path.is_file():
            continue
        try:
            path.unlink()
        except OSError as exc:
            log.debug("  Could not delete %s: %s", path.name, exc)
            continue
        log.info("  Deleted: %s", path.name)
        removed += 1

    if removed:
        done(f"Cleaned up {removed} temporary file(s)")
    else:
        log.info("No temporary files to clean up")
    return removed
