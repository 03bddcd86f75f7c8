import json
import logging
import os
import sys
from contextlib import contextmanager
from typing import Optional

from loguru import logger as _loguru_logger

_LOGGING_CONFIGURED = False
_logger = _loguru_logger

# Stdlib loggers we route through loguru, with the level each one is allowed to emit at.
# "codelens" follows LOG_LEVEL; infrastructure is kept quiet.
LIBRARY_LEVELS = {
    "codelens": None,
    "uvicorn": "INFO",
    "uvicorn.access": "WARNING",
    "uvicorn.error": "INFO",
    "fastapi": "INFO",
    "sqlalchemy.engine": "WARNING",
    "sqlalchemy.pool": "WARNING",
    "alembic": "INFO",
    "httpx": "WARNING",
    "httpcore": "WARNING",
    "LiteLLM": "WARNING",
    "litellm": "WARNING",
}


def production_log_sink(message):
    """Write one flat JSON object per line.

    Loguru hands us the serialized record; we flatten it so log shippers
    do not have to dig into ``record.extra`` for the owner/repo/sha ids.
    """
    try:
        full_record = json.loads(message)
        record = full_record.get("record", full_record)
    except (json.JSONDecodeError, AttributeError):
        sys.stdout.write(message)
        sys.stdout.flush()
        return

    log_data = {
        "timestamp": record.get("time", {}).get("repr", ""),
        "level": record.get("level", {}).get("name", "INFO"),
        "logger": record.get("extra", {}).get("name", record.get("name", "unknown")),
        "function": record.get("function", ""),
        "line": record.get("line", 0),
        "message": record.get("message", ""),
    }

    for key, value in record.get("extra", {}).items():
        if key != "name":
            log_data[key] = value

    exc = record.get("exception")
    if exc:
        exc_type = exc.get("type")
        log_data["exception"] = {
            "type": exc_type.get("name", "Exception")
            if isinstance(exc_type, dict)
            else str(exc_type or "Exception"),
            "value": exc.get("value", ""),
            "traceback": exc.get("traceback", ""),
        }

    sys.stdout.write(json.dumps(log_data, default=str) + "\n")
    sys.stdout.flush()


class InterceptHandler(logging.Handler):
    """Route standard library logging records into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = _logger.level(record.levelname).name
        except ValueError:
            level = str(record.levelno)

        frame, depth = sys._getframe(6), 6
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        _logger.bind(name=record.name).opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def configure_logging(level: Optional[str] = None):
    """
    Configure loguru once per process.

    ENV=production writes flat JSON lines, anything else gets the colorized
    developer format. LOG_LEVEL controls our own loggers.
    """
    global _LOGGING_CONFIGURED, _logger

    if _LOGGING_CONFIGURED:
        return

    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO").upper()

    _logger.remove()

    def patcher(record):
        if "name" not in record["extra"]:
            record["extra"]["name"] = record.get("name", "unknown")

    _logger = _logger.patch(patcher)

    if os.getenv("ENV", "development") == "production":
        _logger.add(
            production_log_sink,
            format="{message}",
            level=level,
            serialize=True,
        )
    else:
        _logger.add(
            sys.stdout,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{extra[name]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>",
            level=level,
            colorize=True,
        )

    intercept_handler = InterceptHandler()
    logging.basicConfig(handlers=[intercept_handler], level=logging.INFO, force=True)

    for logger_name, log_level in LIBRARY_LEVELS.items():
        lib_logger = logging.getLogger(logger_name)
        lib_logger.handlers = [intercept_handler]
        lib_logger.setLevel(log_level or level)
        lib_logger.propagate = False

    logging.getLogger().setLevel(logging.WARNING)

    _LOGGING_CONFIGURED = True


@contextmanager
def log_context(**kwargs):
    """
    Attach ids to every log line emitted inside the block.

    Usage:
        with log_context(owner=owner, repo=repo, sha=sha):
            logger.info("Generating analysis")
    """
    with _logger.contextualize(**kwargs):
        yield


def setup_logger(name: str):
    """Return a loguru logger bound to ``name``, configuring logging on first use."""
    if not _LOGGING_CONFIGURED:
        configure_logging()

    return _logger.bind(name=name)
