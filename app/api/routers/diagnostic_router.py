"""
Diagnostic Router.
Accepts client diagnostic submissions and exposes a key-gated server report.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Header, Request

from app.api.dto.system_dto import DiagnosticAckResponseDTO, DiagnosticReportDTO
from app.core.config import settings
from app.core.exceptions import UnauthorizedError
from app.core.logging import get_logger
from app.infrastructure.cache import cache_service
from app.infrastructure.upstream.projection import projection_stats

logger = get_logger(__name__)

# Create router
router = APIRouter()


@router.post("/diagnostic", response_model=DiagnosticAckResponseDTO)
async def submit_diagnostic(request: Request) -> DiagnosticAckResponseDTO:
    """Log a client diagnostic payload and acknowledge it."""
    body = await request.body()
    logger.info(
        f"Client diagnostic received ({len(body)} bytes) from {request.headers.get('user-agent')}"
    )
    return DiagnosticAckResponseDTO(timestamp=datetime.now(timezone.utc))


@router.get("/diagnostic", response_model=DiagnosticReportDTO)
async def diagnostic_report(
    api_key: Optional[str] = Header(None, alias="X-API-Key"),
) -> DiagnosticReportDTO:
    """
    Server diagnostic report.

    Requires the X-API-Key header to match DIAGNOSTIC_API_KEY; the report is
    disabled when no key is configured.
    """
    if not settings.DIAGNOSTIC_API_KEY or api_key != settings.DIAGNOSTIC_API_KEY:
        raise UnauthorizedError("Valid X-API-Key header is required")

    return DiagnosticReportDTO(
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        timestamp=datetime.now(timezone.utc),
        cache=cache_service.sizes(),
        projections=projection_stats.snapshot(),
        providers={
            "neynar": bool(settings.NEYNAR_API_KEY),
            "alchemy": bool(settings.ALCHEMY_API_KEY),
            "zapper": bool(settings.ZAPPER_API_KEY),
        },
    )
