"""
Error response schema.
"""
from pydantic import BaseModel, Field

from pollara.core.exceptions import ErrorCode


class ErrorResponse(BaseModel):
    """Body of every domain error response."""

    success: bool = Field(default=False)
    error_code: ErrorCode = Field(..., description="Stable machine-readable error code")
    message: str = Field(..., description="Human-readable description")
