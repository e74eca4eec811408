"""
File-based logging for the WebMCP proxy.

The MCP entry point talks to its client over stdio, so nothing here may
write to stdout/stderr. Logs go to a rotating file instead:
- Rotates at 5MB, keeps 3 backups
- Thread-safe (stdlib handlers lock internally)
- Timestamped, levelled lines
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

DEFAULT_LOG_DIR = Path.home() / ".webmcp" / "logs"
LOG_FILE_NAME = "webmcp_proxy.log"

# Module-level logger
_logger: Optional[logging.Logger] = None
_log_dir: Path = Path(os.getenv("WEBMCP_LOG_DIR", str(DEFAULT_LOG_DIR)))


def _build_handler(log_dir: Path) -> RotatingFileHandler:
    log_dir.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        log_dir / LOG_FILE_NAME,
        maxBytes=5 * 1024 * 1024,  # 5MB
        backupCount=3,
        encoding="utf-8"
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))
    return handler


def configure_logging(log_dir: Union[str, Path, None] = None) -> logging.Logger:
    """
    (Re)point the proxy logger at a log directory.

    Called once at startup by the API factory and the MCP entry point.
    Existing handlers are closed so repeated calls don't duplicate lines.
    """
    global _logger, _log_dir

    if log_dir is not None:
        _log_dir = Path(log_dir).expanduser()

    logger = logging.getLogger("webmcp_proxy")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.addHandler(_build_handler(_log_dir))
    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    """Get the proxy logger, initializing it on first call."""
    if _logger is not None:
        return _logger
    return configure_logging()


def log_info(msg: str):
    get_logger().info(msg)


def log_warn(msg: str):
    get_logger().warning(msg)


def log_error(msg: str):
    get_logger().error(msg)


def log_debug(msg: str):
    get_logger().debug(msg)
