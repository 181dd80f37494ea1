"""Logging configuration for the Samsung FUS firmware downloader."""

import logging

try:
    import colorlog
    _COLORLOG_AVAILABLE = True
except ImportError:
    _COLORLOG_AVAILABLE = False

log = logging.getLogger("samfirm")

_BANNER_WIDTH = 80


def _setup_logging(debug: bool = False) -> None:
    level = logging.DEBUG if debug else logging.INFO
    log.setLevel(level)
    log.handlers.clear()

    if _COLORLOG_AVAILABLE:
        handler = colorlog.StreamHandler()
        handler.setFormatter(colorlog.ColoredFormatter(
            "%(log_color)s%(asctime)s [%(levelname)s]%(reset)s %(message)s",
            datefmt="%H:%M:%S",
            log_colors={
                "DEBUG":    "cyan",
                "INFO":     "green",
                "WARNING":  "yellow",
                "ERROR":    "red",
                "CRITICAL": "bold_red",
            },
        ))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(message)s", datefmt="%H:%M:%S"
        ))
    log.addHandler(handler)


def done(message: str) -> None:
    """Log a completed pipeline step."""
    log.info("[DONE] %s", message)


def fail_banner(message: str, code: int = 1) -> None:
    """Emit the user-visible banner for a fatal pipeline error."""
    log.critical("!!! PROCESS FAILED !!!")
    log.critical("=" * _BANNER_WIDTH)
    log.critical(">> %s", message)
    log.critical("Exiting with code: %d", code)
