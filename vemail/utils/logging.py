"""Logging utility for the Vemail client"""

import json
import logging
import re
from datetime import datetime, timezone
from functools import wraps
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, MutableMapping, Optional

from rich.logging import RichHandler

from .paths import LOGS_DIR

_LOG_DIR: Optional[Path] = None

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRS = set(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys()
) | {"message", "asctime"}


def _get_log_dir() -> Path:
    """Get log directory, creating it on first access."""

    from .errors import FileSystemError

    global _LOG_DIR

    if _LOG_DIR is None:
        _LOG_DIR = LOGS_DIR
        try:
            _LOG_DIR.mkdir(parents=True, exist_ok=True)
        except Exception as e:
            raise FileSystemError(f"Failed to create log directory: {_LOG_DIR}") from e

    return _LOG_DIR


## Custom JSON Formatter


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for log records."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }

        context = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS
        }
        if context:
            log_entry["context"] = context

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class ContextAdapter(logging.LoggerAdapter):
    """Logger adapter to add contextual information."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        if "extra" not in kwargs:
            kwargs["extra"] = {}

        kwargs["extra"].update(self.extra)
        return msg, kwargs


## Log Masking


class SensitiveDataMasker:
    """Masks credentials before they reach any handler.

    The client forwards app passwords to the account service on create and
    update; those values must never be written to a log file.
    """

    PATTERNS = {
        "password": re.compile(
            r'((?:app_?)?password["\']?\s*[:=]\s*["\']?)([^"\'},\s]+)', re.IGNORECASE
        ),
        "credential": re.compile(
            r'(credential["\']?\s*[:=]\s*["\']?)([^"\'},\s]+)', re.IGNORECASE
        ),
        "token": re.compile(
            r'(token["\']?\s*[:=]\s*["\']?)([^"\'},\s]+)', re.IGNORECASE
        ),
        "secret": re.compile(
            r'(secret["\']?\s*[:=]\s*["\']?)([^"\'},\s]+)', re.IGNORECASE
        ),
        "authorization": re.compile(
            r'(authorization["\']?\s*[:=]\s*["\']?)([^"\'},\s]+)', re.IGNORECASE
        ),
    }

    SENSITIVE_FIELDS = {
        "password",
        "app_password",
        "apppassword",
        "credential",
        "secret",
        "token",
        "authorization",
        "cookie",
    }

    MASK_STRATEGIES = {
        "full": lambda x: "[REDACTED]",
        "hash": lambda x: f"[HASHED:{hash(x) & 0xFFFFFFFF:08X}]",
    }

    def __init__(self, strategy: str = "full"):
        self.strategy = strategy
        self.mask_func = self.MASK_STRATEGIES[strategy]

    def mask_string(self, text: str) -> str:
        """Mask sensitive data in a string message."""

        if not text:
            return text

        masked = text
        for pattern in self.PATTERNS.values():
            masked = pattern.sub(lambda m: m.group(1) + self.mask_func(m.group(2)), masked)

        return masked

    def mask_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Mask sensitive data in a dictionary."""

        masked = {}

        for key, value in data.items():
            if str(key).lower() in self.SENSITIVE_FIELDS:
                masked[key] = self.mask_func(str(value))
            elif isinstance(value, dict):
                masked[key] = self.mask_dict(value)
            elif isinstance(value, str):
                masked[key] = self.mask_string(value)
            else:
                masked[key] = value

        return masked


class SensitiveDataFilter(logging.Filter):
    """Logging filter to mask sensitive data in log records."""

    def __init__(self, strategy: str = "full"):
        super().__init__()
        self.masker = SensitiveDataMasker(strategy)

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self.masker.mask_string(record.msg)

        for key in [k for k in record.__dict__ if k not in _RECORD_ATTRS]:
            value = record.__dict__[key]
            if key.lower() in self.masker.SENSITIVE_FIELDS:
                setattr(record, key, self.masker.mask_func(str(value)))
            elif isinstance(value, str):
                setattr(record, key, self.masker.mask_string(value))
            elif isinstance(value, dict):
                setattr(record, key, self.masker.mask_dict(value))

        return True


def _level(name: str) -> int:
    level = logging.getLevelName(str(name).upper())
    if not isinstance(level, int):
        raise ValueError(f"Invalid logging level: {name}")
    return level


## Main Log Manager


class LogManager:
    """Manages logging configuration and provides logger instances."""

    def __init__(
        self,
        log_level: str = "INFO",
        max_file_size: int = 5_242_880,
        backup_count: int = 5,
    ):
        self.log_level = _level(log_level)
        self.max_file_size = max_file_size
        self.backup_count = backup_count
        self.root_logger = logging.getLogger("vemail")
        self.root_logger.setLevel(logging.DEBUG)
        self.root_logger.propagate = False
        self._setup_handlers()

    def configure(
        self,
        log_level: Optional[str] = None,
        max_file_size: Optional[int] = None,
        backup_count: Optional[int] = None,
    ) -> None:
        """Apply new settings and rebuild the handlers."""

        if log_level is not None:
            self.log_level = _level(log_level)
        if max_file_size is not None:
            self.max_file_size = max_file_size
        if backup_count is not None:
            self.backup_count = backup_count

        self._setup_handlers()

    def _setup_handlers(self) -> None:
        """Setup console and file handlers with sensitive data filtering."""

        from .errors import FileSystemError, VemailError

        sensitive_filter = SensitiveDataFilter(strategy="full")

        try:
            for handler in list(self.root_logger.handlers):
                self.root_logger.removeHandler(handler)
                handler.close()

            console_handler = RichHandler(
                show_time=True,
                show_path=False,
                markup=False,
                rich_tracebacks=True,
            )
            console_handler.setLevel(logging.WARNING)
            console_handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
            console_handler.addFilter(sensitive_filter)

            log_dir = _get_log_dir()

            try:
                app_handler = RotatingFileHandler(
                    log_dir / "app.log",
                    maxBytes=self.max_file_size,
                    backupCount=self.backup_count,
                    encoding="utf-8",
                )
                event_handler = RotatingFileHandler(
                    log_dir / "events.log",
                    maxBytes=2_048_000,
                    backupCount=3,
                    encoding="utf-8",
                )

            except OSError as e:
                raise FileSystemError(f"Failed to create log file handler: {str(e)}") from e

            app_handler.setLevel(self.log_level)
            app_handler.setFormatter(JSONFormatter())
            app_handler.addFilter(sensitive_filter)

            event_handler.setLevel(logging.INFO)
            event_handler.setFormatter(JSONFormatter())
            event_handler.addFilter(lambda record: hasattr(record, "event_type"))
            event_handler.addFilter(sensitive_filter)

            self.root_logger.addHandler(console_handler)
            self.root_logger.addHandler(app_handler)
            self.root_logger.addHandler(event_handler)

        except VemailError:
            raise

        except Exception as e:
            raise FileSystemError(f"Failed to setup logging handlers: {str(e)}") from e

    def get_logger(
        self, name: Optional[str] = None, **context
    ) -> logging.Logger | ContextAdapter:
        """Get a logger with optional context."""

        if name and not name.startswith("vemail"):
            name = f"vemail.{name}"

        logger = logging.getLogger(name or "vemail")

        if context:
            return ContextAdapter(logger, context)

        return logger

    def set_level(self, level: str):
        """Set console logging level at runtime"""

        console_level = _level(level)

        for handler in self.root_logger.handlers:
            if isinstance(handler, RichHandler):
                handler.setLevel(console_level)

    def log_event(self, event_type: str, message: str, level: str = "INFO", **extra):
        """Log an event with specific type and extra context."""

        extra_dict = {"event_type": event_type}
        extra_dict.update(extra)

        try:
            log_level = getattr(logging, level.upper())
        except AttributeError as e:
            raise ValueError(f"Invalid logging level: {level}") from e

        self.root_logger.log(log_level, message, extra=extra_dict)


## Decorators for Logging


def log_call(func):
    """Decorator to log function calls with duration."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        logger = logging.getLogger("vemail")
        func_name = f"{func.__module__}.{func.__qualname__}"
        logger.debug(f"-> Entering {func_name}")
        start_time = datetime.now()

        try:
            result = func(*args, **kwargs)
            duration = (datetime.now() - start_time).total_seconds()
            logger.debug(f"<- Exiting {func_name} (Duration: {duration:.3f}s)")
            return result

        except Exception as e:
            duration = (datetime.now() - start_time).total_seconds()
            logger.exception(f"<- Error in {func_name} after {duration:.3f}s: {e}")
            raise

    return wrapper


def async_log_call(func):
    """Async decorator to log function calls with duration."""

    @wraps(func)
    async def wrapper(*args, **kwargs):
        logger = logging.getLogger("vemail")
        func_name = f"{func.__module__}.{func.__qualname__}"
        logger.debug(f"-> Entering {func_name} (async)")
        start_time = datetime.now()

        try:
            result = await func(*args, **kwargs)
            duration = (datetime.now() - start_time).total_seconds()
            logger.debug(f"<- Exiting {func_name} (Duration: {duration:.3f}s)")
            return result

        except Exception as e:
            duration = (datetime.now() - start_time).total_seconds()
            logger.exception(f"<- Error in {func_name} after {duration:.3f}s: {e}")
            raise

    return wrapper


## Module-level LogManager Instance and Helper Functions

_log_manager: Optional[LogManager] = None


def init_logging(log_level: str = "INFO", force: bool = False, **options) -> LogManager:
    """Initialize logging system and return LogManager instance.

    Loggers are created at import time, so the manager usually exists
    already; ``force`` reapplies the given settings to it.
    """

    global _log_manager

    if _log_manager is None:
        _log_manager = LogManager(log_level, **options)
    elif force:
        _log_manager.configure(log_level, **options)

    return _log_manager


def get_logger(
    name: Optional[str] = None, **context
) -> logging.Logger | ContextAdapter:
    """Get a logger instance with optional context."""

    manager = init_logging()
    return manager.get_logger(name, **context)


def log_event(event_type: str, message: str, **extra):
    """Log an event with specific type and extra context (module-level wrapper)."""

    manager = init_logging()
    return manager.log_event(event_type, message, **extra)
