"""
Structured logging for the pulse service.

Development runs get coloured console output. Production (``ENV=production``)
writes JSON lines to a rotating file for log shipping.

Post bodies and scraped HTML end up in log fields (parse errors, skipped
items), so string values are clipped to ``MAX_FIELD_CHARS``. Per-logger
levels can be raised or lowered without a deploy through ``LOG_LEVELS``:

    LOG_LEVELS="src.ingest.adapters=DEBUG,telethon=INFO"

Usage:
    from src.utils.logging_config import configure_logging, get_logger

    configure_logging()  # once, at process start

    logger = get_logger(__name__)
    logger.warning("Source not found", source_id="isw", platform="bluesky")

    with source_log_context("isw", "bluesky"):
        ...  # every line logged here carries source_id and platform
"""

import logging
import logging.handlers
import os
import sys
from contextlib import contextmanager
from typing import Iterator, Optional

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

DEFAULT_LOG_FILE = "logs/osint-pulse.log"
MAX_FIELD_CHARS = 500

# Chatty libraries that log every request or query at INFO
NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "uvicorn.access",
    "telethon",
    "aiosqlite",
    "sqlalchemy.engine",
)

# Keys whose values are never clipped
_UNCLIPPED_KEYS = frozenset({"event", "exception", "stack"})


def _is_production() -> bool:
    env = os.getenv("ENV", os.getenv("ENVIRONMENT", "development")).lower()
    return env in ("production", "prod")


def _level_from_name(name: str, default: int = logging.INFO) -> int:
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else default


def parse_level_overrides(value: Optional[str]) -> dict[str, int]:
    """Parse ``name=LEVEL`` pairs separated by commas. Malformed pairs are skipped."""
    overrides: dict[str, int] = {}
    for pair in (value or "").split(","):
        name, sep, level_name = pair.partition("=")
        name = name.strip()
        if not sep or not name:
            continue
        level = logging.getLevelName(level_name.strip().upper())
        if isinstance(level, int):
            overrides[name] = level
    return overrides


def clip_long_values(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """structlog processor: shorten long string values in place."""
    for key, value in event_dict.items():
        if key in _UNCLIPPED_KEYS or not isinstance(value, str):
            continue
        if len(value) > MAX_FIELD_CHARS:
            event_dict[key] = f"{value[:MAX_FIELD_CHARS]}... [{len(value)} chars]"
    return event_dict


def _build_handler(json_format: bool, log_file: Optional[str]) -> tuple[logging.Handler, Processor]:
    if json_format:
        log_file = log_file or os.getenv("LOG_FILE", DEFAULT_LOG_FILE)
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        handler: logging.Handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
        )
        # Post text is frequently non-ASCII (Cyrillic, Arabic, Hebrew)
        return handler, structlog.processors.JSONRenderer(ensure_ascii=False)

    handler = logging.StreamHandler(sys.stdout)
    renderer = structlog.dev.ConsoleRenderer(
        colors=True,
        exception_formatter=structlog.dev.plain_traceback,
    )
    return handler, renderer


def apply_level_overrides(overrides: dict[str, int]) -> None:
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    for name, level in overrides.items():
        logging.getLogger(name).setLevel(level)


def configure_logging(
    json_format: Optional[bool] = None,
    log_level: Optional[int] = None,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure structlog and route stdlib logging through the same renderer.

    Args:
        json_format: JSON file output when True. Defaults to True in production.
        log_level: Minimum level. Defaults to ``LOG_LEVEL`` (INFO).
        log_file: Production log path. Defaults to ``LOG_FILE`` or logs/osint-pulse.log.
    """
    if json_format is None:
        json_format = _is_production()
    if log_level is None:
        log_level = _level_from_name(os.getenv("LOG_LEVEL", "INFO"))

    overrides = parse_level_overrides(os.getenv("LOG_LEVELS"))
    # structlog filters before stdlib, so it must let the lowest override through
    wrapper_level = min([log_level, *overrides.values()])

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        clip_long_values,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.processors.format_exc_info,
    ]

    handler, renderer = _build_handler(json_format, log_file)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(wrapper_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=shared_processors,
        )
    )

    logging.basicConfig(format="%(message)s", handlers=[handler], level=log_level)
    apply_level_overrides(overrides)


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, typically ``get_logger(__name__)``."""
    return structlog.get_logger(name)


def bind_context(**kwargs) -> None:
    """
    Bind key/values that every later log line in this context will carry.

    Example:
        bind_context(request_id="abc123")
        logger.info("Cache hit", cache_key="osint:all")  # includes request_id
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Drop all bound context. Call at the end of each request."""
    structlog.contextvars.clear_contextvars()


@contextmanager
def source_log_context(source_id: str, platform: str) -> Iterator[None]:
    """Tag log lines emitted while one source is fetched. Restores prior context on exit."""
    with structlog.contextvars.bound_contextvars(source_id=source_id, platform=platform):
        yield
