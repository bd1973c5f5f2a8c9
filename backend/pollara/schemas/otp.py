"""
OTP-related Pydantic schemas.
"""
from pydantic import BaseModel, Field

from pollara.services.otp_service import OtpPurpose


class OtpIssueRequest(BaseModel):
    """Request to issue and deliver a one-time passcode."""

    identity: str = Field(
        ...,
        min_length=3,
        max_length=255,
        description="Identity the code is addressed to (email)"
    )
    purpose: OtpPurpose = Field(..., description="What the code will unlock")


class OtpIssueResponse(BaseModel):
    """Response after an OTP was issued."""

    success: bool = Field(default=True)
    message: str = Field(default="OTP sent successfully")
    expires_in: int = Field(..., description="Server-side validity in seconds")


class OtpVerifyRequest(BaseModel):
    """Request to verify a one-time passcode."""

    identity: str = Field(..., min_length=3, max_length=255)
    purpose: OtpPurpose = Field(...)
    code: str = Field(
        ...,
        min_length=4,
        max_length=10,
        pattern=r"^\d+$",
        description="The code received out-of-band"
    )


class OtpVerifyResponse(BaseModel):
    """Response from OTP verification."""

    verified: bool = Field(..., description="Whether the code matched")
