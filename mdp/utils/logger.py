"""
Logging for the mdp package.

Every subsystem logs under the "mdp" namespace (mdp.merkle, mdp.batch,
mdp.ledger, ...). Importing a module only installs a colored stderr
handler when nothing has configured the namespace yet. An explicit
setup_logging call, as the CLI makes once it has read --debug and the
MDP_LOG_* settings, always replaces the handlers and level in place.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import colorlog


ROOT_LOGGER = "mdp"
LOG_FILE_NAME = "mdp.log"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

CONSOLE_FORMAT = "%(log_color)s%(asctime)s [%(name)s] %(levelname)-8s%(reset)s %(message)s"
FILE_FORMAT = "%(asctime)s [%(name)s] %(levelname)-8s %(message)s"

LEVEL_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


class MDPLogger:
    """Owns the handlers attached to the mdp namespace logger"""

    _configured = False
    _log_file: Optional[Path] = None

    @classmethod
    def setup(
        cls,
        level: int = logging.INFO,
        log_dir: Optional[str] = None,
        log_to_file: bool = False,
    ) -> Optional[Path]:
        """
        (Re)configure the mdp namespace.

        Handlers installed by an earlier call are closed and replaced, so
        this can run after modules have already fetched their loggers.

        Args:
            level: Logging level for the namespace and its handlers
            log_dir: Directory for mdp.log. If None, uses ./logs
            log_to_file: Also append records to log_dir/mdp.log

        Returns:
            Path of the log file, or None when logging to stderr only
        """
        root = cls._detach_handlers()
        root.setLevel(level)

        console = colorlog.StreamHandler(sys.stderr)
        console.setLevel(level)
        console.setFormatter(
            colorlog.ColoredFormatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT, log_colors=LEVEL_COLORS)
        )
        root.addHandler(console)

        cls._log_file = None
        if log_to_file:
            directory = Path(log_dir) if log_dir else Path("logs")
            directory.mkdir(parents=True, exist_ok=True)
            cls._log_file = directory / LOG_FILE_NAME

            file_handler = logging.FileHandler(cls._log_file, encoding="utf-8")
            file_handler.setLevel(level)
            file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
            root.addHandler(file_handler)

        cls._configured = True
        return cls._log_file

    @classmethod
    def reset(cls):
        """Close every mdp handler and forget the configuration."""
        cls._detach_handlers().setLevel(logging.NOTSET)
        cls._log_file = None
        cls._configured = False

    @classmethod
    def log_file(cls) -> Optional[Path]:
        return cls._log_file

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """
        Get a logger for a subsystem, e.g. 'merkle', 'lifecycle' or 'batch'.

        Installs the stderr defaults on first use unless setup already ran.
        """
        if not cls._configured:
            cls.setup()
        return logging.getLogger(f"{ROOT_LOGGER}.{name}")

    @staticmethod
    def _detach_handlers() -> logging.Logger:
        root = logging.getLogger(ROOT_LOGGER)
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        return root


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a specific subsystem"""
    return MDPLogger.get_logger(name)


def setup_logging(
    level: int = logging.INFO,
    log_dir: Optional[str] = None,
    log_to_file: bool = False,
) -> Optional[Path]:
    """Apply the level and handlers, replacing any earlier configuration"""
    return MDPLogger.setup(level=level, log_dir=log_dir, log_to_file=log_to_file)
