"""
Logging configuration for the reversal scanner.

Updates: v0.2.0 - 2026-09-21 - Configurable log directory; quieten LiteLLM.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Optional


class EncodingSafeStreamHandler(logging.StreamHandler):
    """Stream handler that tolerates consoles without full Unicode support."""

    def emit(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        stream = self.stream
        if stream is None:
            return

        msg = self.format(record)

        try:
            stream.write(msg + self.terminator)
        except UnicodeEncodeError:
            encoding = getattr(stream, "encoding", None) or "utf-8"
            safe_message = msg.encode(encoding, errors="replace").decode(encoding, errors="replace")
            try:
                stream.write(safe_message + self.terminator)
            except Exception:
                self.handleError(record)
                return
        except Exception:
            self.handleError(record)
            return

        self.flush()


def setup_logging(log_level: str = "INFO",
                  log_file: str = "reversal_scanner.log",
                  max_bytes: int = 10 * 1024 * 1024,  # 10MB
                  backup_count: int = 5,
                  log_dir: Optional[Path] = None) -> None:
    """Setup logging configuration and ensure safe Unicode output."""

    normalized_level = log_level.upper() if isinstance(log_level, str) else "INFO"
    if normalized_level not in logging.getLevelNamesMapping():
        normalized_level = "INFO"
    level = logging.getLevelNamesMapping()[normalized_level]

    log_dir = log_dir or Path(__file__).parent.parent / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # File handler with rotation
    file_handler = RotatingFileHandler(
        log_dir / log_file,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    # Console handler goes to stderr so JSON/CSV output on stdout stays clean
    console_handler: logging.Handler = EncodingSafeStreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    # Set third-party loggers to WARNING to reduce noise
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('requests').setLevel(logging.WARNING)
    logging.getLogger('LiteLLM').setLevel(logging.WARNING)
