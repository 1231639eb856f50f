"""
Structured logging configuration.
Designed for easy debugging without exposing memory or message content.
"""
import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import Processor

from agent_context.core.config import Settings, settings as default_settings


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure structured logging for the application."""
    settings = settings or default_settings

    # Common processors
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.LOG_FORMAT == "json":
        # JSON format for production
        renderer = structlog.processors.JSONRenderer()
    else:
        # Console format for development
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Configure root logger
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=shared_processors,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper()))

    # Reduce noise from third-party libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def log_context_assembly(
    logger: structlog.stdlib.BoundLogger,
    window: Any,
    duration_ms: Optional[float] = None,
    **extra: Any
) -> None:
    """
    Log token accounting for an assembled context window.
    Logs counts and budgets, but NEVER prompt, memory or message content.
    """
    logger.info(
        "Context window assembled",
        token_budget=window.token_budget,
        tokens_used=window.tokens_used,
        over_budget=window.tokens_used > window.token_budget,
        memories_count=len(window.memories),
        working_memory_keys=len(window.working_memory),
        messages_count=len(window.messages),
        duration_ms=duration_ms,
        **extra
    )
