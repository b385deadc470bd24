"""Utils module for the site cloner pipeline."""

from site_cloner.utils.logger import LogContext, get_logger, setup_logging
from site_cloner.utils.retry import (
    AIGenerationError,
    AppError,
    ErrorHandler,
    NotFoundError,
    PersistenceError,
    QueueFullError,
    RateLimitError,
    ScrapingError,
    ValidationError,
    build_retrying,
    is_transient_error,
    with_deadline,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "LogContext",
    "build_retrying",
    "is_transient_error",
    "with_deadline",
    "ErrorHandler",
    "AppError",
    "ScrapingError",
    "AIGenerationError",
    "ValidationError",
    "NotFoundError",
    "PersistenceError",
    "RateLimitError",
    "QueueFullError",
]
