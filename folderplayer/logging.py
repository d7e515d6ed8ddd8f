"""Application logging with rotating file output under the XDG data directory.

File logging captures everything at DEBUG; the console only shows warnings
and errors so the player stays quiet in a terminal.
"""

# ============================================================================
# Standard Library Imports (alphabetical)
# ============================================================================
import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional

# ============================================================================
# Third-Party Imports (alphabetical, with version requirements)
# ============================================================================
# None

# ============================================================================
# Local Imports (grouped by package, alphabetical)
# ============================================================================
# None

ROOT_LOGGER_NAME = "folderplayer"

# Libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore")


class AppLogger:
    """
    Process-wide logger setup.

    Supports:
    - File logging to XDG data directory
    - Console output for warnings and errors
    - Environment variable control (FOLDERPLAYER_DEBUG)
    """

    _instance: Optional["AppLogger"] = None
    _initialized: bool = False

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Initialize the logger.

        Args:
            log_dir: Directory for log files (defaults to XDG data dir)
        """
        self.logger = logging.getLogger(ROOT_LOGGER_NAME)
        if AppLogger._initialized:
            return

        self.logger.setLevel(
            logging.DEBUG if os.getenv("FOLDERPLAYER_DEBUG") else logging.INFO
        )

        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

        # Prevent duplicate handlers
        if self.logger.handlers:
            AppLogger._initialized = True
            return

        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        # Console handler (stderr)
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(formatter)
        self.logger.addHandler(console_handler)

        if log_dir is None:
            xdg_data = os.getenv("XDG_DATA_HOME", Path.home() / ".local" / "share")
            log_dir = Path(xdg_data) / "folderplayer" / "logs"

        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_dir / "folderplayer.log",
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
            )
        except OSError as e:
            # Read-only home: console logging only
            self.logger.warning("File logging disabled (%s)", e)
        else:
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

        AppLogger._initialized = True

    @classmethod
    def get_logger(cls, name: str = ROOT_LOGGER_NAME) -> logging.Logger:
        """
        Get a logger instance.

        Args:
            name: Logger name (creates child logger)

        Returns:
            Logger instance
        """
        root = logging.getLogger(ROOT_LOGGER_NAME)
        if name == ROOT_LOGGER_NAME:
            return root
        if name.startswith(ROOT_LOGGER_NAME + "."):
            name = name[len(ROOT_LOGGER_NAME) + 1:]
        return root.getChild(name)

    @classmethod
    def set_level(cls, level: int) -> None:
        """Set logging level for the application logger."""
        logging.getLogger(ROOT_LOGGER_NAME).setLevel(level)


def setup_logging(log_dir: Optional[Path] = None) -> logging.Logger:
    """Install handlers once and return the application logger."""
    if AppLogger._instance is None:
        AppLogger._instance = AppLogger(log_dir=log_dir)
    return AppLogger._instance.logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """Get a logger instance."""
    return AppLogger.get_logger(name)
