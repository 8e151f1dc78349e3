"""
Catalogue use cases.

One coroutine per API operation. Everything raised from here is a
``CatalogError``; translating those into HTTP responses is the API's job.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import structlog
from pydantic import ValidationError as PydanticValidationError
from starlette.concurrency import run_in_threadpool

from catalog.access import AccessGuard
from catalog.exceptions import (
    BookNotFoundError,
    DuplicateUserError,
    ForbiddenError,
    InvalidCredentialsError,
    MalformedPayloadError,
)
from catalog.images import ImageStore
from catalog.models import Book, BookCreate, BookUpdate, User
from catalog.ratings import RatingAggregator
from catalog.repositories import BookRepository, UserRepository
from catalog.security import PasswordHasher, TokenService

logger = structlog.get_logger(__name__)


@dataclass
class ImageUpload:
    """An uploaded cover as received from the client."""
    data: bytes
    content_type: Optional[str] = None
    filename: Optional[str] = None


def describe_validation_error(error: PydanticValidationError) -> str:
    """Flatten pydantic errors into ``field: message`` pairs."""
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "body"
        parts.append(f"{location}: {item.get('msg')}")
    return "; ".join(parts)


class CatalogService:
    """Composes repositories, security, ratings and image storage."""

    def __init__(
        self,
        users: UserRepository,
        books: BookRepository,
        tokens: TokenService,
        passwords: PasswordHasher,
        images: ImageStore,
        guard: Optional[AccessGuard] = None,
        best_rating_limit: int = 3,
    ):
        self.users = users
        self.books = books
        self.tokens = tokens
        self.passwords = passwords
        self.images = images
        self.guard = guard or AccessGuard()
        self.best_rating_limit = best_rating_limit
        self.ratings = RatingAggregator(books)

    # Accounts

    async def signup(self, email: str, password: str) -> User:
        """
        Register a new user.

        The lookup gives a clean error in the common case; the unique index
        still rejects a concurrent duplicate at insert time.
        """
        if await self.users.find_by_email(email) is not None:
            logger.warning("Signup with existing email refused")
            raise DuplicateUserError()

        password_hash = await run_in_threadpool(self.passwords.hash, password)
        return await self.users.insert_user(email, password_hash)

    async def login(self, email: str, password: str) -> Tuple[str, str]:
        """
        Check credentials and issue a token.

        Returns:
            Tuple of (user id, bearer token)
        """
        user = await self.users.find_by_email(email)
        if user is None:
            logger.info("Login failed", reason="unknown email")
            raise InvalidCredentialsError()

        valid = await run_in_threadpool(self.passwords.verify, password, user.password_hash)
        if not valid:
            logger.info("Login failed", reason="wrong password", user_id=user.id)
            raise InvalidCredentialsError()

        logger.info("Login succeeded", user_id=user.id)
        return user.id, self.tokens.issue(user.id)

    # Books

    async def list_books(self) -> List[Book]:
        return await self.books.find_all()

    async def best_rated_books(self) -> List[Book]:
        return await self.books.find_top_by_average_rating(self.best_rating_limit)

    async def get_book(self, book_id: str) -> Book:
        book = await self.books.find_by_id(book_id)
        if book is None:
            raise BookNotFoundError(book_id)
        return book

    async def create_book(
        self,
        owner_id: str,
        payload: Dict[str, Any],
        image: Optional[ImageUpload] = None,
    ) -> Book:
        """
        Create a book owned by ``owner_id``.

        Initial ratings are accepted only from the owner. When a cover is
        uploaded it replaces any ``imageUrl`` in the payload.
        """
        try:
            data = BookCreate.model_validate(payload)
        except PydanticValidationError as e:
            raise MalformedPayloadError(detail=describe_validation_error(e))

        if image is None and not data.image_url:
            raise MalformedPayloadError(detail="imageUrl: an image upload or an imageUrl is required")

        if any(rating.user_id != owner_id for rating in data.ratings):
            raise MalformedPayloadError(detail="initial ratings may only come from the book owner")

        if image is not None:
            image_url = await run_in_threadpool(self.images.save, image.data, image.content_type)
            data = data.model_copy(update={"image_url": image_url})

        try:
            return await self.books.insert(data.to_document(owner_id))
        except Exception:
            if image is not None:
                self.images.delete(data.image_url)
            raise

    async def update_book(
        self,
        book_id: str,
        payload: Dict[str, Any],
        image: Optional[ImageUpload] = None,
        requester_id: Optional[str] = None,
    ) -> Book:
        """
        Overwrite the supplied fields of a book.

        Owner, ratings and average rating cannot be changed here.
        """
        book = await self.get_book(book_id)
        self.guard.authorize_update(book, requester_id)

        try:
            update = BookUpdate.model_validate(payload)
        except PydanticValidationError as e:
            raise MalformedPayloadError(detail=describe_validation_error(e))

        fields = update.to_fields()
        if image is not None:
            fields["imageUrl"] = await run_in_threadpool(self.images.save, image.data, image.content_type)

        try:
            updated = await self.books.update(book_id, fields)
        except Exception:
            if image is not None:
                self.images.delete(fields["imageUrl"])
            raise

        if updated is None:
            if image is not None:
                self.images.delete(fields["imageUrl"])
            raise BookNotFoundError(book_id)

        if "imageUrl" in fields and book.image_url != updated.image_url:
            self.images.delete(book.image_url)

        logger.info("Book updated", book_id=book_id, fields=sorted(fields))
        return updated

    async def delete_book(self, book_id: str, requester_id: str) -> None:
        book = await self.get_book(book_id)
        self.guard.authorize_delete(book, requester_id)

        if not await self.books.delete(book_id):
            raise BookNotFoundError(book_id)

        self.images.delete(book.image_url)
        logger.info("Book deleted", book_id=book_id, user_id=requester_id)

    async def rate_book(
        self,
        book_id: str,
        requester_id: str,
        grade,
        claimed_user_id: Optional[str] = None,
    ) -> Book:
        """
        Rate a book as the authenticated user.

        ``claimed_user_id`` is the rater named in the request body, if any;
        it must match the token.
        """
        if claimed_user_id is not None and claimed_user_id != requester_id:
            logger.warning("Rating on behalf of another user refused", book_id=book_id, requester_id=requester_id)
            raise ForbiddenError("You can only rate books as yourself")

        return await self.ratings.submit_rating(book_id, requester_id, grade)
