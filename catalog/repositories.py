"""
Repositories over the users and books collections.

Books embed their ratings. The only write that touches ``ratings`` is the
rating append, an aggregation pipeline update that recomputes
``averageRating`` in the same operation, so the stored average never lags
behind the stored grades.
"""

from typing import Any, Dict, List, Optional

import structlog
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from catalog.exceptions import DuplicateUserError
from catalog.models import Book, User

logger = structlog.get_logger(__name__)

# $avg of an empty array is null
AVERAGE_RATING_EXPR = {"$ifNull": [{"$avg": "$ratings.grade"}, 0]}


def to_object_id(value: Optional[str]) -> Optional[ObjectId]:
    """Parse a public identifier, returning None when it is not an ObjectId."""
    # ObjectId(None) generates a fresh id instead of failing
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        return None
    return ObjectId(value)


def _literal_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    # Pipeline stages treat "$..." strings as field paths
    return {key: {"$literal": value} for key, value in fields.items()}


class UserRepository:
    """Credential store."""

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    async def find_by_email(self, email: str) -> Optional[User]:
        try:
            document = await self.collection.find_one({"email": email})
            if document:
                return User.from_document(document)
            return None
        except Exception as e:
            logger.error("Failed to find user by email", error=str(e))
            raise

    async def insert_user(self, email: str, password_hash: str) -> User:
        """
        Insert a new user.

        Raises:
            DuplicateUserError: if the email is already registered
        """
        document = {"email": email, "passwordHash": password_hash}
        try:
            result = await self.collection.insert_one(document)
        except DuplicateKeyError:
            logger.warning("Email already registered")
            raise DuplicateUserError()
        except Exception as e:
            logger.error("Failed to insert user", error=str(e))
            raise

        document["_id"] = result.inserted_id
        logger.info("User created", user_id=str(result.inserted_id))
        return User.from_document(document)


class BookRepository:
    """Book store."""

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    async def find_by_id(self, book_id: str) -> Optional[Book]:
        """
        Get a book by identifier.

        Identifiers that are not valid ObjectIds simply match nothing.
        """
        object_id = to_object_id(book_id)
        if object_id is None:
            return None
        try:
            document = await self.collection.find_one({"_id": object_id})
            return Book.from_document(document) if document else None
        except Exception as e:
            logger.error("Failed to get book by ID", book_id=book_id, error=str(e))
            raise

    async def find_all(self) -> List[Book]:
        try:
            cursor = self.collection.find({})
            return [Book.from_document(document) async for document in cursor]
        except Exception as e:
            logger.error("Failed to list books", error=str(e))
            raise

    async def find_top_by_average_rating(self, limit: int) -> List[Book]:
        """Return at most ``limit`` books, best average first."""
        try:
            cursor = self.collection.find({}).sort("averageRating", DESCENDING).limit(limit)
            return [Book.from_document(document) async for document in cursor]
        except Exception as e:
            logger.error("Failed to list best rated books", limit=limit, error=str(e))
            raise

    async def insert(self, document: Dict[str, Any]) -> Book:
        try:
            result = await self.collection.insert_one(document)
        except Exception as e:
            logger.error("Failed to insert book", title=document.get("title"), error=str(e))
            raise

        document["_id"] = result.inserted_id
        logger.info("Book created", book_id=str(result.inserted_id), user_id=document.get("userId"))
        return Book.from_document(document)

    async def update(self, book_id: str, fields: Dict[str, Any]) -> Optional[Book]:
        """
        Overwrite the given fields of a book.

        Args:
            book_id: Book identifier
            fields: camelCase fields to overwrite

        Returns:
            The updated book, or None if not found
        """
        if not fields:
            return await self.find_by_id(book_id)

        object_id = to_object_id(book_id)
        if object_id is None:
            return None

        pipeline = [{"$set": _literal_fields(fields)}]

        try:
            document = await self.collection.find_one_and_update(
                {"_id": object_id},
                pipeline,
                return_document=ReturnDocument.AFTER,
            )
        except Exception as e:
            logger.error("Failed to update book", book_id=book_id, error=str(e))
            raise

        if document is None:
            logger.warning("Book not found for update", book_id=book_id)
            return None
        logger.debug("Successfully updated book", book_id=book_id, fields=sorted(fields))
        return Book.from_document(document)

    async def delete(self, book_id: str) -> bool:
        """Delete a book, returning False if it did not exist."""
        object_id = to_object_id(book_id)
        if object_id is None:
            return False
        try:
            result = await self.collection.delete_one({"_id": object_id})
        except Exception as e:
            logger.error("Failed to delete book", book_id=book_id, error=str(e))
            raise
        return result.deleted_count > 0

    async def add_rating(self, book_id: str, user_id: str, grade: float) -> Optional[Book]:
        """
        Append a rating if ``user_id`` has not rated the book yet.

        The uniqueness check, the append and the average recomputation run
        as one conditional write on the server.

        Returns:
            The updated book, or None when no book matched (missing book or
            existing rating by this user)
        """
        object_id = to_object_id(book_id)
        if object_id is None:
            return None

        new_rating = {"userId": {"$literal": user_id}, "grade": {"$literal": grade}}
        pipeline = [
            {"$set": {"ratings": {"$concatArrays": [{"$ifNull": ["$ratings", []]}, [new_rating]]}}},
            {"$set": {"averageRating": AVERAGE_RATING_EXPR}},
        ]

        try:
            document = await self.collection.find_one_and_update(
                {"_id": object_id, "ratings.userId": {"$ne": user_id}},
                pipeline,
                return_document=ReturnDocument.AFTER,
            )
        except Exception as e:
            logger.error("Failed to add rating", book_id=book_id, user_id=user_id, error=str(e))
            raise

        return Book.from_document(document) if document else None
