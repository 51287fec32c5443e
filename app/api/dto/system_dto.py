"""
DTOs (Data Transfer Objects) for GraphQL proxy, health and diagnostic endpoints.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


# Request DTOs
class GraphQLRequestDTO(BaseModel):
    """Request body forwarded to the portfolio GraphQL service."""

    query: Optional[str] = Field(None, description="GraphQL document")
    variables: Optional[Dict[str, Any]] = Field(None, description="Query variables")
    operation_name: Optional[str] = Field(None, alias="operationName")

    class Config:
        populate_by_name = True


# Response DTOs
class HealthResponseDTO(BaseModel):
    """Response DTO for health check."""

    status: str = Field("ok", description="Service status")
    version: str = Field(..., description="Application version")
    timestamp: datetime = Field(..., description="Server time")


class DiagnosticAckResponseDTO(BaseModel):
    """Response DTO for client diagnostic submissions."""

    success: bool = True
    message: str = "Diagnostic data received"
    timestamp: datetime


class DiagnosticReportDTO(BaseModel):
    """Response DTO for the diagnostic report."""

    status: str = "ok"
    version: str
    environment: str
    timestamp: datetime
    cache: Dict[str, int] = Field(default_factory=dict, description="Entries per cache kind")
    projections: Dict[str, Dict[str, int]] = Field(
        default_factory=dict, description="Decoded payload shapes per provider"
    )
    providers: Dict[str, bool] = Field(default_factory=dict, description="Configured credentials")
