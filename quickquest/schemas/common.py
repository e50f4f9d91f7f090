"""
Common schema types used across the API.
"""

from typing import List, Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
    request_id: Optional[str] = None


class MessageResponse(BaseModel):
    """Standard success response."""

    message: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str
    database: str = "connected"
    email_configured: bool = False
    oauth_providers: List[str] = []
