"""
Domain exceptions for the catalogue.

Every exception carries the HTTP status the API answers with, so the
FastAPI exception handler can translate them without a lookup table.
"""

from typing import Optional


class CatalogError(Exception):
    """Base exception for all catalogue errors."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        detail: Optional[str] = None,
    ):
        self.message = message or self.default_message
        self.code = code or self.__class__.__name__
        self.detail = detail
        super().__init__(self.message)


class ValidationError(CatalogError):
    """Input validation failed."""

    status_code = 400
    default_message = "Invalid input"


class MalformedPayloadError(ValidationError):
    """Request body could not be decoded into book data."""

    default_message = "Malformed book payload"


class InvalidRatingError(ValidationError):
    """Grade is not a number inside the accepted range."""

    default_message = "Rating must be a number between 1 and 5"


class InvalidImageError(ValidationError):
    """Uploaded file is not a decodable image."""

    default_message = "Invalid image file"


class DuplicateUserError(ValidationError):
    """Email already registered."""

    default_message = "Email already registered"


class DuplicateRatingError(ValidationError):
    """User already rated this book."""

    default_message = "You have already rated this book"


class AuthenticationError(CatalogError):
    """Authentication failed (invalid or missing credentials)."""

    status_code = 401
    default_message = "Authentication required"


class MissingTokenError(AuthenticationError):
    default_message = "Missing bearer token"


class InvalidTokenError(AuthenticationError):
    default_message = "Invalid authentication token"


class ExpiredTokenError(AuthenticationError):
    default_message = "Authentication token has expired"


class InvalidCredentialsError(AuthenticationError):
    default_message = "Invalid email or password"


class ForbiddenError(CatalogError):
    """Requester does not own the resource."""

    status_code = 403
    default_message = "Forbidden"


class NotFoundError(CatalogError):
    """Resource not found."""

    status_code = 404
    default_message = "Resource not found"


class BookNotFoundError(NotFoundError):

    def __init__(self, book_id: str):
        super().__init__(f"Book '{book_id}' not found", code="BOOK_NOT_FOUND")
        self.book_id = book_id
