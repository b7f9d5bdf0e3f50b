import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

# Global flag for verbose output (set by pipeline.py)
VERBOSE = False

LOGGER_NAME = "photo_manifest"


def _logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)


def logInfo(message):
    if VERBOSE:
        print(message)
    _logger().info(message)

def logError(message):
    print(f"❌ {message}")  # Always show errors
    _logger().error(message)

def logWarn(message):
    print(f"⚠️ {message}")  # Always show warnings
    _logger().warning(message)

def logDebug(message):
    if _logger().isEnabledFor(logging.DEBUG):
        print(f"[DEBUG] {message}")
    _logger().debug(message)

def logProgress(message):
    """Always show progress messages even without --verbose"""
    print(message)
    _logger().info(message)


def setup_logging(level: str = "INFO", log_dir: Optional[str] = "logs") -> Optional[Path]:
    """Attach a per-run file handler and set the level.

    Console echo is done by the log* helpers above, so only the file sink is
    installed here. Returns the log file path (None when file logging is off).
    """
    logger = _logger()
    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    logger.propagate = False
    for handler in list(logger.handlers):
        if isinstance(handler, logging.FileHandler):
            logger.removeHandler(handler)
            handler.close()

    if not log_dir:
        return None

    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    log_file = directory / f"manifest_{timestamp}.log"

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(message)s'))
    logger.addHandler(file_handler)
    return log_file
