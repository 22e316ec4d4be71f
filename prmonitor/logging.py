"""Logging from config and env.

Levels (inclusive):
- ERROR: critical errors only
- WARNING: transient API/store failures and ERROR
- INFO: mode changes, PR state transitions, WARNING, and ERROR
- DEBUG: per-tick scheduling details and all levels above

Configure via config.yaml (logging.level, logging.format, logging.file) or env
(LOGGING_LEVEL, LOGGING_FORMAT, LOGGING_FILE).
"""

import logging
from pathlib import Path

from prmonitor.config import LoggingConfig

# Supported levels only (DEBUG, INFO, WARNING, ERROR)
LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}

DEFAULT_LEVEL = "INFO"
DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _resolve_level(level: str) -> int:
    """Map level name to logging constant.

    Falls back to INFO if unknown.
    """
    return LEVELS.get(level.upper().strip(), logging.INFO)


class MonitorLogging:
    """Configures root logger from LoggingConfig (YAML + env LOGGING_*)."""

    def __init__(self, config: LoggingConfig) -> None:
        """Store logging config (level, format and optional file)."""
        self._level = _resolve_level(config.level)
        self._format = config.format or DEFAULT_FORMAT
        self._file = Path(config.file).expanduser() if config.file else None

    def setup(self) -> None:
        """Apply level, format and destination to the root logger."""
        if self._file is not None:
            self._file.parent.mkdir(parents=True, exist_ok=True)
            logging.basicConfig(
                level=self._level,
                format=self._format,
                filename=str(self._file),
                force=True,
            )
        else:
            logging.basicConfig(
                level=self._level,
                format=self._format,
                force=True,
            )
        # urllib3 logs every request at DEBUG; keep it out of ours
        logging.getLogger("urllib3").setLevel(max(self._level, logging.INFO))

    def get_logger(self, name: str) -> logging.Logger:
        """Return a logger with the given name (uses root config)."""
        return logging.getLogger(name)
