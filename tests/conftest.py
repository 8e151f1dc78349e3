"""
Pytest configuration and shared fixtures.
"""

from io import BytesIO
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from PIL import Image

from catalog.access import AccessGuard
from catalog.exceptions import DuplicateUserError
from catalog.images import ImageStore
from catalog.models import Book, User
from catalog.security import PasswordHasher, TokenService
from catalog.service import CatalogService

TEST_SECRET = "test-secret-key"


class InMemoryUserRepository:
    """Credential store kept in a dict, same contract as UserRepository."""

    def __init__(self):
        self.documents: Dict[str, Dict[str, Any]] = {}

    async def find_by_email(self, email: str) -> Optional[User]:
        for document in self.documents.values():
            if document["email"] == email:
                return User.from_document(document)
        return None

    async def insert_user(self, email: str, password_hash: str) -> User:
        if await self.find_by_email(email) is not None:
            raise DuplicateUserError()
        document = {"_id": ObjectId(), "email": email, "passwordHash": password_hash}
        self.documents[str(document["_id"])] = document
        return User.from_document(document)


class InMemoryBookRepository:
    """Book store kept in a dict, same contract as BookRepository."""

    def __init__(self):
        self.documents: Dict[str, Dict[str, Any]] = {}

    def _load(self, book_id: str) -> Optional[Book]:
        document = self.documents.get(book_id)
        return Book.from_document(document) if document else None

    async def find_by_id(self, book_id: str) -> Optional[Book]:
        return self._load(book_id)

    async def find_all(self) -> List[Book]:
        return [Book.from_document(document) for document in self.documents.values()]

    async def find_top_by_average_rating(self, limit: int) -> List[Book]:
        books = await self.find_all()
        return sorted(books, key=lambda book: book.average_rating, reverse=True)[:limit]

    async def insert(self, document: Dict[str, Any]) -> Book:
        document = dict(document, _id=ObjectId())
        self.documents[str(document["_id"])] = document
        return Book.from_document(document)

    async def update(self, book_id: str, fields: Dict[str, Any]) -> Optional[Book]:
        document = self.documents.get(book_id)
        if document is None:
            return None
        document.update(fields)
        return self._load(book_id)

    async def delete(self, book_id: str) -> bool:
        return self.documents.pop(book_id, None) is not None

    async def add_rating(self, book_id: str, user_id: str, grade: float) -> Optional[Book]:
        document = self.documents.get(book_id)
        if document is None:
            return None
        if any(rating["userId"] == user_id for rating in document["ratings"]):
            return None
        document["ratings"] = document["ratings"] + [{"userId": user_id, "grade": grade}]
        grades = [rating["grade"] for rating in document["ratings"]]
        document["averageRating"] = sum(grades) / len(grades)
        return self._load(book_id)


@pytest.fixture
def user_repository():
    return InMemoryUserRepository()


@pytest.fixture
def book_repository():
    return InMemoryBookRepository()


@pytest.fixture
def token_service():
    return TokenService(secret_key=TEST_SECRET, algorithm="HS256", expire_minutes=60)


@pytest.fixture
def image_store(tmp_path):
    return ImageStore(upload_dir=tmp_path / "uploads", url_prefix="/uploads", size=(206, 260))


@pytest.fixture
def catalog_service(user_repository, book_repository, token_service, image_store):
    """Catalogue use cases over in-memory repositories."""
    return CatalogService(
        users=user_repository,
        books=book_repository,
        tokens=token_service,
        passwords=PasswordHasher(),
        images=image_store,
        guard=AccessGuard(require_owner_for_update=False),
        best_rating_limit=3,
    )


@pytest.fixture
def sample_book_payload():
    """Book fields as a client sends them."""
    return {
        "title": "Milwaukee Mission",
        "author": "Elder Cooper",
        "year": 2021,
        "genre": "Policier",
        "imageUrl": "https://via.placeholder.com/206x260",
    }


@pytest.fixture
def sample_book_document():
    """A stored book document with three ratings."""
    return {
        "_id": ObjectId(),
        "userId": "owner-1",
        "title": "The Great Gatsby",
        "author": "F. Scott Fitzgerald",
        "year": 1925,
        "genre": "Fiction",
        "imageUrl": "/uploads/gatsby.webp",
        "ratings": [
            {"userId": "u1", "grade": 5},
            {"userId": "u2", "grade": 3},
            {"userId": "u3", "grade": 4},
        ],
        "averageRating": 4,
    }


@pytest.fixture
def png_bytes():
    """A small valid PNG image."""
    output = BytesIO()
    Image.new("RGB", (400, 300), color=(200, 30, 30)).save(output, format="PNG")
    return output.getvalue()


@pytest.fixture
def mock_books_collection():
    """Mock motor collection for the books repository."""
    collection = MagicMock()
    collection.find_one = AsyncMock(return_value=None)
    collection.find_one_and_update = AsyncMock(return_value=None)
    collection.insert_one = AsyncMock()
    collection.delete_one = AsyncMock()
    return collection
