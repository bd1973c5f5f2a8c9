"""
Face ID Pydantic schemas.
"""
from datetime import datetime

from pydantic import BaseModel, Field


class FaceRegisterResponse(BaseModel):
    """Response after a face image was stored."""

    success: bool = Field(default=True)
    message: str = Field(default="User facial data registered successfully")
    first_registration: bool = Field(
        ...,
        description="Whether this call registered the user's face for the first time"
    )


class SignedReferenceResponse(BaseModel):
    """Signed, time-limited reference to the stored face image."""

    url: str = Field(..., description="Signed URL to fetch the face image")
    expires_at: datetime = Field(..., description="When the signed URL stops working")
