"""
Unified logging system
Supports output to files and console based on configuration
"""

import logging
import logging.handlers
from pathlib import Path
from typing import Dict, Optional

from daytrace.config.loader import get_config, get_config_dir


class LoggerManager:
    """Log manager"""

    def __init__(self):
        self._loggers: Dict[str, logging.Logger] = {}
        self._setup_root_logger()

    def _setup_root_logger(self):
        """Setup root logger"""
        config = get_config()

        log_level = config.get("logging.level", "INFO")
        logs_dir = config.get("logging.logs_dir", str(get_config_dir() / "logs"))
        max_file_size = config.get("logging.max_file_size", "10MB")
        backup_count = config.get("logging.backup_count", 5)

        Path(logs_dir).mkdir(parents=True, exist_ok=True)

        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, str(log_level).upper(), logging.INFO))
        root_logger.handlers.clear()

        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        root_logger.addHandler(console_handler)

        file_format = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
        )

        file_handler = logging.handlers.RotatingFileHandler(
            Path(logs_dir) / "daytrace.log",
            maxBytes=self._parse_size(max_file_size),
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(file_format)
        root_logger.addHandler(file_handler)

        error_handler = logging.handlers.RotatingFileHandler(
            Path(logs_dir) / "error.log",
            maxBytes=self._parse_size(max_file_size),
            backupCount=backup_count,
            encoding="utf-8",
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(file_format)
        root_logger.addHandler(error_handler)

    def _parse_size(self, size_str) -> int:
        """Parse file size string ("512KB", "10MB", "1GB" or plain bytes)"""
        size_str = str(size_str).upper()
        if size_str.endswith("KB"):
            return int(size_str[:-2]) * 1024
        elif size_str.endswith("MB"):
            return int(size_str[:-2]) * 1024 * 1024
        elif size_str.endswith("GB"):
            return int(size_str[:-2]) * 1024 * 1024 * 1024
        return int(size_str)

    def get_logger(self, name: str) -> logging.Logger:
        """Get logger with specified name"""
        if name not in self._loggers:
            self._loggers[name] = logging.getLogger(name)
        return self._loggers[name]


# Created by the first get_logger() call
_logger_manager: Optional[LoggerManager] = None


def get_logger(name: str) -> logging.Logger:
    """Convenience function to get logger"""
    global _logger_manager
    if _logger_manager is None:
        _logger_manager = LoggerManager()
    return _logger_manager.get_logger(name)


def setup_logging():
    """(Re)configure handlers, e.g. after the config file changed"""
    global _logger_manager
    if _logger_manager is None:
        _logger_manager = LoggerManager()
    else:
        _logger_manager._setup_root_logger()
