import sys
from loguru import logger
from pathlib import Path
from typing import Optional

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
AUDIT_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {thread.name} | {name}:{function}:{line} - {message}"

_console: Optional[tuple] = None
_audit_files: set = set()


def setup_logger(log_level: str = "INFO", log_file: Optional[Path] = None, audit_level: str = "DEBUG"):
    """Configure the stderr sink and, optionally, the run audit file.

    Calling again with the same level and stream keeps the existing console sink; each
    audit file is attached once per process.
    """
    global _console

    if _console != (log_level, sys.stderr):
        logger.remove()
        _audit_files.clear()
        logger.add(sys.stderr, format=CONSOLE_FORMAT, level=log_level, colorize=True)
        _console = (log_level, sys.stderr)

    if log_file is not None:
        log_file = Path(log_file)
        key = str(log_file.resolve())
        if key not in _audit_files:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            logger.add(
                log_file,
                format=AUDIT_FORMAT,
                level=audit_level,
                rotation="10 MB",
                retention="7 days",
            )
            _audit_files.add(key)

    return logger
