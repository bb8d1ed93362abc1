import json
import logging
import logging.handlers
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from kioku.core.config import settings

MAX_LOG_BYTES = 10 * 1024 * 1024
SLOW_OPERATION_MS = 5000

# Record attributes copied to the top level of a JSON line when present
STRUCTURED_FIELDS = (
    "correlation_id", "user_id", "endpoint", "method", "status_code",
    "execution_time_ms", "service_name", "operation", "event_type",
    "deck_id", "quiz_id", "attempt_id", "entity_type", "entity_id",
)


class EnhancedJSONFormatter(logging.Formatter):
    """One JSON object per record, with the structured fields lifted out of ``extra``"""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
            "environment": settings.ENVIRONMENT,
        }
        entry.update({
            name: getattr(record, name)
            for name in STRUCTURED_FIELDS
            if getattr(record, name, None) is not None
        })

        security_event = getattr(record, "security_event", None)
        if security_event:
            entry["security"] = security_event

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": self.formatException(record.exc_info).splitlines(),
            }

        return json.dumps(entry, default=str)


class _DomainLogger:
    """Thin wrapper giving a plain logger a few event-shaped helpers"""

    def __init__(self, logger: logging.Logger):
        self.logger = logger


class PerformanceLogger(_DomainLogger):

    @contextmanager
    def measure_time(self, operation: str, service_name: Optional[str] = None, **context):
        """
        Time the enclosed block and log it with ``execution_time_ms``.

        Extra keyword arguments (deck_id, quiz_id, ...) are attached to the record.
        The timing is logged even when the block raises.
        """
        started = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = (time.perf_counter() - started) * 1000
            level = logging.WARNING if elapsed_ms > SLOW_OPERATION_MS else logging.DEBUG
            self.logger.log(
                level,
                f"{operation} finished in {elapsed_ms:.2f}ms",
                extra={
                    "operation": operation,
                    "service_name": service_name,
                    "execution_time_ms": round(elapsed_ms, 2),
                    **context,
                },
            )


class SecurityLogger(_DomainLogger):

    def _event(self, level: int, message: str, user_id: Optional[str], **event):
        self.logger.log(level, message, extra={"user_id": user_id, "security_event": event})

    def log_authentication_attempt(
            self,
            success: bool,
            user_id: Optional[str] = None,
            method: str = "local_password"
    ):
        outcome = "succeeded" if success else "failed"
        self._event(
            logging.INFO if success else logging.WARNING,
            f"Profile login {outcome} for user {user_id or 'unknown'}",
            user_id,
            event_type="authentication",
            success=success,
            method=method,
        )

    def log_credential_change(self, user_id: str, action: str):
        """Password set or removed on a local profile"""
        self._event(
            logging.WARNING,
            f"Password {action} for user {user_id}",
            user_id,
            event_type="credential_change",
            action=action,
        )


class APILogger(_DomainLogger):

    def log_response(
            self,
            method: str,
            path: str,
            status_code: int,
            response_time_ms: float,
            correlation_id: Optional[str] = None
    ):
        if status_code >= 500:
            level = logging.ERROR
        elif status_code >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO

        self.logger.log(
            level,
            f"{method} {path} -> {status_code} in {response_time_ms:.2f}ms",
            extra={
                "method": method,
                "endpoint": path,
                "status_code": status_code,
                "execution_time_ms": response_time_ms,
                "correlation_id": correlation_id,
                "event_type": "api_response",
            },
        )


class _HasAttribute(logging.Filter):
    """Pass only records carrying one of the given ``extra`` attributes"""

    def __init__(self, *names: str):
        super().__init__()
        self.names = names

    def filter(self, record: logging.LogRecord) -> bool:
        return any(hasattr(record, name) for name in self.names)


def _file_handler(path: Path, level: int, backups: int, record_filter: Optional[logging.Filter] = None):
    handler = logging.handlers.RotatingFileHandler(path, maxBytes=MAX_LOG_BYTES, backupCount=backups)
    handler.setLevel(level)
    handler.setFormatter(EnhancedJSONFormatter())
    if record_filter is not None:
        handler.addFilter(record_filter)
    return handler


def setup_logging():
    """
    Configure the root logger: console plus four rotating JSON files under LOG_DIR.

    kioku.log gets everything, errors.log ERROR and up, security.log the
    profile login and password events, performance.log the timed operations.
    """
    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper()))
    for handler in list(root.handlers):
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.INFO)
    console.setFormatter(
        logging.Formatter(settings.LOG_FORMAT)
        if settings.ENVIRONMENT == "development"
        else EnhancedJSONFormatter()
    )
    root.addHandler(console)

    root.addHandler(_file_handler(log_dir / "kioku.log", logging.DEBUG, backups=10))
    root.addHandler(_file_handler(log_dir / "errors.log", logging.ERROR, backups=10))
    root.addHandler(_file_handler(
        log_dir / "security.log", logging.INFO, backups=10,
        record_filter=_HasAttribute("security_event"),
    ))
    root.addHandler(_file_handler(
        log_dir / "performance.log", logging.DEBUG, backups=5,
        record_filter=_HasAttribute("execution_time_ms"),
    ))

    for noisy, level in (
            ("uvicorn", logging.INFO),
            ("sqlalchemy.engine", logging.WARNING),
            ("aiosqlite", logging.WARNING),
            ("httpx", logging.WARNING),
    ):
        logging.getLogger(noisy).setLevel(level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_performance_logger(name: str) -> PerformanceLogger:
    return PerformanceLogger(get_logger(name))


def get_security_logger(name: str) -> SecurityLogger:
    return SecurityLogger(get_logger(name))


def get_api_logger(name: str) -> APILogger:
    return APILogger(get_logger(name))
