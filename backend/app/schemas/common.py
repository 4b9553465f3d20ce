"""
Writegy Backend - Shared Response Schemas
===========================================

What:  Error and health payloads shared by every router.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "circular_reference",
            "message": "Cannot move a document under itself or one of its descendants",
            "details": {"document_id": "...", "parent_id": "..."},
            "request_id": "a1b2c3d4"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    llm: str = Field(description="Completion endpoint: available, unconfigured, circuit_open")
    storage_backend: str = Field(description="Active storage backend: local or s3")
    uptime_seconds: float = Field(description="Seconds since service started")
