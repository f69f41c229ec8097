"""Logging configuration for bibble."""

import sys
import logging
import logging.handlers
from pathlib import Path
from typing import Optional

DEFAULT_LOG_DIR = Path.home() / ".bibble" / "logs"


def setup_logging(level: Optional[int] = None, log_dir: Optional[str] = None) -> None:
    """Configure logging for bibble.

    Console output goes to stderr so it never interleaves with streamed
    assistant text on stdout.

    Args:
        level: Optional logging level (e.g., logging.DEBUG). If None, uses WARNING.
        log_dir: Optional directory for log files. If None, only console logging is used.
    """
    level = level or logging.WARNING

    formatter = logging.Formatter(
        fmt='%(asctime)s.%(msecs)03d [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if not root_logger.handlers:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if log_dir:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)

        main_handler = logging.handlers.RotatingFileHandler(
            log_dir / "bibble.log",
            maxBytes=10_000_000,  # 10MB
            backupCount=5
        )
        main_handler.setFormatter(formatter)
        root_logger.addHandler(main_handler)

        error_handler = logging.handlers.RotatingFileHandler(
            log_dir / "error.log",
            maxBytes=10_000_000,  # 10MB
            backupCount=5
        )
        error_handler.setFormatter(formatter)
        error_handler.setLevel(logging.ERROR)
        root_logger.addHandler(error_handler)

    logging.getLogger('bibble').setLevel(level)
    logging.getLogger('mcp').setLevel(level)

    if level != logging.DEBUG:
        for logger_name in ['asyncio', 'httpx', 'httpcore', 'anthropic', 'openai', 'google_genai', 'aiohttp']:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info("Logging initialized", extra={
        "level": logging.getLevelName(level),
        "log_dir": str(log_dir) if log_dir else None
    })
