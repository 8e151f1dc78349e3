"""
API request and response schemas for the FastAPI application.
"""

from datetime import datetime
from typing import Any, Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, ConfigDict, Field, field_validator

from catalog.models import Book


class SignupRequest(BaseModel):
    """Signup request body."""
    email: str = Field(..., description="Email address, unique per user, stored as sent")
    password: str = Field(..., min_length=1, description="Plain text password")

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v):
        # Login matches the exact string, so the normalized form is not kept
        try:
            validate_email(v, check_deliverability=False)
        except EmailNotValidError as e:
            raise ValueError(str(e))
        return v


class LoginRequest(BaseModel):
    """Login request body."""
    email: str = Field(..., min_length=1, description="Registered email address")
    password: str = Field(..., min_length=1, description="Plain text password")


class LoginResponse(BaseModel):
    """Login response carrying the bearer token."""
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId", description="Authenticated user identifier")
    token: str = Field(..., description="Bearer token, valid for one hour by default")


class RatingRequest(BaseModel):
    """
    Rating request body.

    ``rating`` is checked by the rating aggregator rather than here so that
    every caller goes through the same grade rules.
    """
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(None, alias="userId", description="Rater, must match the token if given")
    rating: Any = Field(..., description="Grade between 1 and 5")


class MessageResponse(BaseModel):
    """Plain acknowledgement."""
    message: str = Field(..., description="Human readable message")


class BookCreatedResponse(BaseModel):
    """Response to a successful book creation."""
    message: str = Field(..., description="Human readable message")
    book: Book = Field(..., description="The stored book")


class ErrorResponse(BaseModel):
    """Error response model."""
    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Additional error details")
    status_code: int = Field(..., description="HTTP status code")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
    database_status: str = Field(..., description="Database connection status")
