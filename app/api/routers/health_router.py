"""
Health Router.
"""

from datetime import datetime, timezone

from fastapi import APIRouter

from app.api.dto.system_dto import HealthResponseDTO
from app.core.config import settings

# Create router
router = APIRouter()


@router.get("/health", response_model=HealthResponseDTO)
async def health_check() -> HealthResponseDTO:
    """Health check endpoint."""
    return HealthResponseDTO(
        status="ok",
        version=settings.APP_VERSION,
        timestamp=datetime.now(timezone.utc),
    )
