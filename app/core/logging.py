"""
Logging configuration for the NFT Gallery Gateway.
Provides structured logging for upstream calls, cache activity and request handling.
"""

import logging
import sys
from typing import Any, Dict, Optional

import structlog
from structlog.stdlib import LoggerFactory

from app.core.config import settings


def setup_logging() -> None:
    """
    Configure structured logging for the application.
    Sets up different log formats for development and production environments.
    """

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            _get_processor(),
        ],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.LOG_LEVEL.upper()),
    )

    # Set specific logger levels
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)
    logging.getLogger("motor").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _get_processor():
    """
    Get the appropriate processor based on environment.

    Returns:
        Processor function for structlog
    """
    if settings.ENVIRONMENT == "production":
        return structlog.processors.JSONRenderer()
    else:
        return structlog.dev.ConsoleRenderer(colors=True)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        structlog.stdlib.BoundLogger: Configured logger instance
    """
    return structlog.get_logger(name)


class LoggerMixin:
    """Mixin class to add logging capabilities to any class."""

    @property
    def logger(self) -> structlog.stdlib.BoundLogger:
        """Get logger instance for this class."""
        return get_logger(self.__class__.__module__ + "." + self.__class__.__name__)


def redact(text: str, secret: Optional[str]) -> str:
    """Replace a secret (API key) in a URL or message before it is logged."""
    if secret and text:
        return text.replace(secret, "[REDACTED]")
    return text


# Specialized logging functions for gateway operations

def log_upstream_call(
    provider: str,
    endpoint: str,
    status_code: Optional[int] = None,
    duration: Optional[float] = None,
    outcome: str = "success",
    **kwargs
) -> None:
    """
    Log a single outbound call to an upstream provider.

    Args:
        provider: Upstream provider (neynar, alchemy, zapper, media)
        endpoint: Logical endpoint name or redacted URL
        status_code: HTTP status returned by the upstream, if any
        duration: Call duration in seconds
        outcome: success, timeout, network, http_status, decode, not_found
        **kwargs: Additional context
    """
    logger = get_logger("upstream.call")
    logger.info(
        "Upstream call",
        provider=provider,
        endpoint=endpoint,
        status_code=status_code,
        duration=duration,
        outcome=outcome,
        **kwargs
    )


def log_cache_event(kind: str, key: str, outcome: str, **kwargs) -> None:
    """
    Log cache activity.

    Args:
        kind: Cache partition (generic, transfers, profiles, friends)
        key: Cache key
        outcome: hit, miss, set, evict, expired
        **kwargs: Additional context
    """
    logger = get_logger("cache.event")
    logger.debug("Cache event", kind=kind, key=key, outcome=outcome, **kwargs)


def log_projection(provider: str, projection: str, **kwargs) -> None:
    """
    Log which response projection decoded an upstream payload.

    Args:
        provider: Upstream provider name
        projection: Name of the projection that matched
        **kwargs: Additional context
    """
    logger = get_logger("upstream.projection")
    logger.debug(
        "Response projection matched",
        provider=provider,
        projection=projection,
        **kwargs
    )


def log_error(error: Exception, context: Dict[str, Any] = None) -> None:
    """
    Log an error with context.

    Args:
        error: Exception instance
        context: Additional context information
    """
    logger = get_logger("error")
    logger.error(
        "An error occurred",
        error=str(error),
        error_type=type(error).__name__,
        context=context or {},
        exc_info=True
    )


def log_request(method: str, url: str, status_code: int, duration: float, **kwargs) -> None:
    """
    Log HTTP request details.

    Args:
        method: HTTP method
        url: Request URL
        status_code: Response status code
        duration: Request duration in seconds
        **kwargs: Additional context to log
    """
    logger = get_logger("http.request")
    logger.info(
        "HTTP request completed",
        method=method,
        url=url,
        status_code=status_code,
        duration=duration,
        **kwargs
    )
