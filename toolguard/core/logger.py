"""
Structured logging for Toolguard.

Provides:
- Console output (colorized if supported)
- File output (JSON lines for CI parsing)
- Rule context on every record (rule id, category, file, operation)
- Error code catalog

Usage:
    from toolguard.core.logger import setup_logger, RuleLogger

    logger = setup_logger("toolguard", log_file=Path("toolguard.log"))
    logger.info("Probing", extra={"rule_id": "hooks.pre_commit"})

    rule_log = RuleLogger("hooks.pre_commit", category="hooks")
    rule_log.error("Fix raised", error_code="RPR-01")
"""

import json
import logging
import sys
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional


LOGGER_NAME = "toolguard"

ERROR_CODES = {
    # Catalog integrity
    "CAT-01": "Prerequisite cycle",
    "CAT-02": "Dangling prerequisite",
    "CAT-03": "Duplicate rule id",

    # Probing
    "PRB-01": "Probe tool timeout",
    "PRB-02": "Probe tool not installed",
    "PRB-03": "Probe could not determine state",

    # Repair
    "RPR-01": "Fix procedure raised",
    "RPR-02": "Fix did not converge",
    "RPR-03": "Revert failed - manual inspection required",

    # File system
    "FS-01": "Read-only directory",
    "FS-03": "Disk full",
    "FS-09": "Path outside project root",

    # Git
    "GIT-04": "Git not installed",
    "GIT-06": "Git timeout",

    # Runtime
    "RT-06": "Keyboard interrupt",
    "RT-07": "SIGTERM received",

    # Configuration
    "CFG-01": "Invalid configuration",
    "CFG-02": "Unknown rule id in configuration",
}

CONTEXT_FIELDS = ('rule_id', 'category', 'file_path', 'error_code', 'operation')


@dataclass
class LogContext:
    """Context information for log entries."""
    rule_id: Optional[str] = None
    category: Optional[str] = None
    file_path: Optional[str] = None
    error_code: Optional[str] = None
    operation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict, excluding None values."""
        return {k: v for k, v in asdict(self).items() if v is not None}


class ContextFilter(logging.Filter):
    """Make sure every record carries the context attributes."""

    def __init__(self, default_context: Optional[LogContext] = None):
        super().__init__()
        self.context = default_context or LogContext()

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in self.context.to_dict().items():
            if not hasattr(record, key):
                setattr(record, key, value)

        for name in CONTEXT_FIELDS:
            if not hasattr(record, name):
                setattr(record, name, None)

        return True


class ColoredFormatter(logging.Formatter):
    """Colorized console formatter."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m',
    }

    ICONS = {
        'DEBUG': '🔍',
        'INFO': 'ℹ️ ',
        'WARNING': '⚠️ ',
        'ERROR': '❌',
        'CRITICAL': '🚨',
    }

    def __init__(self, use_colors: bool = True, use_icons: bool = True, stream=None):
        super().__init__()
        stream = stream or sys.stderr
        self.use_colors = use_colors and hasattr(stream, 'isatty') and stream.isatty()
        self.use_icons = use_icons

    def format(self, record: logging.LogRecord) -> str:
        level = record.levelname
        parts = []

        if self.use_icons and level in self.ICONS:
            parts.append(self.ICONS[level])

        if self.use_colors:
            parts.append(f"{self.COLORS.get(level, '')}{level}{self.COLORS['RESET']}")
        else:
            parts.append(level)

        rule_id = getattr(record, 'rule_id', None)
        if rule_id:
            parts.append(f"[{rule_id}]")
        file_path = getattr(record, 'file_path', None)
        if file_path:
            parts.append(f"({file_path})")

        parts.append(record.getMessage())

        error_code = getattr(record, 'error_code', None)
        if error_code:
            parts.append(f"[{error_code}: {ERROR_CODES.get(error_code, 'Unknown error')}]")

        return ' '.join(parts)


class JSONFormatter(logging.Formatter):
    """One JSON object per line for file logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name,
        }

        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = value

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


def setup_logger(
    name: str = LOGGER_NAME,
    log_file: Optional[Path] = None,
    level: int = logging.INFO,
    console: bool = True,
    use_colors: bool = True,
    use_icons: bool = True
) -> logging.Logger:
    """
    Setup logger with console and optional JSON file output.

    Console logging goes to stderr so that --json output on stdout stays
    machine-parseable.

    Args:
        name: Logger name (child modules log under "toolguard.*")
        log_file: Path to JSON-lines log file
        level: Logging level
        console: Enable console output
        use_colors: Use ANSI colors in console
        use_icons: Use emoji icons in console

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers.clear()

    context_filter = ContextFilter()

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(ColoredFormatter(use_colors, use_icons, sys.stderr))
        console_handler.addFilter(context_filter)
        logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(JSONFormatter())
        file_handler.addFilter(context_filter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = LOGGER_NAME) -> logging.Logger:
    return logging.getLogger(name)


class RuleLogger:
    """
    Logger wrapper that stamps every record with a rule's context.
    """

    def __init__(self, rule_id: str, category: Optional[str] = None,
                 logger: Optional[logging.Logger] = None):
        self.rule_id = rule_id
        self.category = category
        self._logger = logger or get_logger(f"{LOGGER_NAME}.rules")

    def _log(
        self,
        level: int,
        message: str,
        file_path: Optional[Path] = None,
        error_code: Optional[str] = None,
        operation: Optional[str] = None,
        exc_info: bool = False,
    ):
        extra = {
            'rule_id': self.rule_id,
            'category': self.category,
            'file_path': str(file_path) if file_path else None,
            'error_code': error_code,
            'operation': operation,
        }
        self._logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, **kwargs)

    def critical(self, message: str, **kwargs):
        self._log(logging.CRITICAL, message, **kwargs)

    def operation_start(self, operation: str, file_path: Optional[Path] = None):
        self.debug(f"Starting: {operation}", file_path=file_path, operation=operation)

    def operation_complete(self, operation: str, success: bool = True):
        if success:
            self.debug(f"Completed: {operation}", operation=operation)
        else:
            self.warning(f"Failed: {operation}", operation=operation)
