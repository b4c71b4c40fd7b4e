# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

import os
import sys
from pathlib import Path

from loguru import logger

__all__ = ["logger", "setup_logging"]

LOG_DIR = Path("logs")
LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


def setup_logging(level: str | None = None, log_dir: Path = LOG_DIR) -> None:
    """Configure the loguru sinks.

    Replaces the default handler with a human readable stderr sink and a
    rotating JSON file sink under ``log_dir``.

    Args:
        level: Minimum level. Defaults to ``COREASON_LOG_LEVEL`` or INFO.
        log_dir: Directory for ``app.log``.
    """
    level = level or os.getenv("COREASON_LOG_LEVEL", "INFO")

    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)

    log_dir.mkdir(parents=True, exist_ok=True)
    logger.add(
        log_dir / "app.log",
        level=level,
        rotation="10 MB",
        retention="1 week",
        serialize=True,
        enqueue=True,
    )
