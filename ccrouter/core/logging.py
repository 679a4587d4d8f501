import logging
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

NOISY_HTTP_LOGGERS = (
    "httpx",
    "httpcore",
    "httpcore.http11",
    "httpcore.connection",
    "huggingface_hub",
)


def normalize_log_level(raw_level: str | None) -> str:
    """Extract the first word of a level string, defaulting to INFO when invalid."""
    if not raw_level:
        return "INFO"
    level = raw_level.split()[0].upper()
    return level if level in VALID_LOG_LEVELS else "INFO"


def set_noisy_http_logger_levels(current_log_level: str) -> None:
    """Ensure HTTP client noise only surfaces at DEBUG level."""

    noisy_level = logging.DEBUG if current_log_level == "DEBUG" else logging.WARNING
    for logger_name in NOISY_HTTP_LOGGERS:
        logging.getLogger(logger_name).setLevel(noisy_level)


_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def _install_correlation_factory() -> None:
    """Wrap the record factory once so records pick up the current correlation id."""
    base_factory = logging.getLogRecordFactory()
    if getattr(base_factory, "tags_correlation_id", False):
        return

    def record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
        record = base_factory(*args, **kwargs)
        correlation_id = _correlation_id.get()
        if correlation_id is not None:
            record.correlation_id = correlation_id
        return record

    record_factory.tags_correlation_id = True  # type: ignore[attr-defined]
    logging.setLogRecordFactory(record_factory)


class ConversationLogger:
    """Logger with correlation ID support"""

    @staticmethod
    def get_logger() -> logging.Logger:
        return logging.getLogger("conversation")

    @staticmethod
    @contextmanager
    def correlation_context(request_id: str) -> Generator[None, None, None]:
        """Tag records created inside the block, in this task only, with ``request_id``."""
        _install_correlation_factory()
        token = _correlation_id.set(request_id)
        try:
            yield
        finally:
            _correlation_id.reset(token)


class CorrelationFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        correlation_id = getattr(record, "correlation_id", None)
        if correlation_id:
            record.msg = f"[{correlation_id[:8]}] {record.msg}"
        return super().format(record)


class HttpRequestLogDowngradeFilter(logging.Filter):
    """Downgrade noisy third-party HTTP logs to DEBUG."""

    def __init__(self, *prefixes: str) -> None:
        super().__init__()
        self.prefixes = prefixes

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno == logging.INFO:
            for prefix in self.prefixes:
                if record.name.startswith(prefix):
                    record.levelno = logging.DEBUG
                    record.levelname = logging.getLevelName(logging.DEBUG)
                    break
        return True


def configure_root_logging(log_level: str | None = None) -> str:
    """Install the gateway's stream handler on the root logger.

    Returns the effective level name.
    """
    if log_level is None:
        from ccrouter.core.config import config

        log_level = config.log_level
    level = normalize_log_level(log_level)

    handler = logging.StreamHandler()
    handler.addFilter(HttpRequestLogDowngradeFilter(*NOISY_HTTP_LOGGERS))
    handler.setFormatter(
        CorrelationFormatter("%(asctime)s - %(levelname)s - %(message)s", datefmt="%H:%M:%S")
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level))

    # Configure uvicorn to be quieter
    for uvicorn_logger in ["uvicorn", "uvicorn.access", "uvicorn.error"]:
        logging.getLogger(uvicorn_logger).setLevel(logging.WARNING)

    set_noisy_http_logger_levels(level)
    logging.getLogger(__name__).debug(f"Logging configured at {level}")
    return level


conversation_logger = ConversationLogger.get_logger()
