# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

#src/capimcp/logging/log.py

from __future__ import annotations

import logging
import sys
from pathlib import Path
from datetime import datetime, timezone
from typing import Optional
import uuid

from capimcp.errors import sanitize_message

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class SanitizingFilter(logging.Filter):
    """Redacts secret-looking substrings from every record before it is emitted."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        cleaned = sanitize_message(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


def init_logging(
    *,
    base_dir: Path | None = None,
    name: str = "capimcp",
    verbose: bool = False,
    level: Optional[str] = None,
    to_file: bool = True,
) -> tuple[logging.Logger, str, Optional[Path]]:
    """
    Initializes:
      - run-scoped log file (full DEBUG trace) unless ``to_file`` is False
      - console handler on stderr so stdio transports keep stdout clean
      - returns run_id so observers can reuse it
    """
    run_id = str(uuid.uuid4())

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()
    logger.propagate = False

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    sanitizer = SanitizingFilter()

    log_path: Optional[Path] = None
    if to_file:
        if base_dir is None:
            base_dir = Path.home() / ".capimcp" / "logs"
        base_dir.mkdir(parents=True, exist_ok=True)

        ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        log_path = base_dir / f"{name}-{ts}-{run_id}.log"

        # File = FULL TRACE
        fh = logging.FileHandler(log_path)
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(formatter)
        fh.addFilter(sanitizer)
        logger.addHandler(fh)

    # Console = INFO by default, DEBUG when --verbose is passed
    console_level = logging.DEBUG if verbose else logging.getLevelName((level or "INFO").upper())
    if not isinstance(console_level, int):
        console_level = logging.INFO
    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(formatter)
    ch.addFilter(sanitizer)
    logger.addHandler(ch)

    logger.info("=== capimcp run started ===")
    logger.info(f"run_id={run_id}")
    if log_path is not None:
        logger.info(f"log_file={log_path}")

    return logger, run_id, log_path
