"""
Tests for the MongoDB repositories against mocked motor collections.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from catalog.exceptions import DuplicateUserError
from catalog.repositories import (
    AVERAGE_RATING_EXPR,
    BookRepository,
    UserRepository,
    to_object_id,
)


class FakeCursor:
    """Minimal async cursor supporting sort/limit chaining."""

    def __init__(self, documents):
        self.documents = list(documents)
        self.sort_args = None
        self.limit_value = None

    def sort(self, *args):
        self.sort_args = args
        return self

    def limit(self, value):
        self.limit_value = value
        return self

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for document in self.documents:
            yield document


def test_to_object_id():
    object_id = ObjectId()
    assert to_object_id(str(object_id)) == object_id
    assert to_object_id("not-an-id") is None
    assert to_object_id(None) is None
    assert to_object_id("") is None
    assert to_object_id(12345) is None


class TestBookRepository:
    """Test cases for BookRepository."""

    @pytest.fixture
    def repository(self, mock_books_collection):
        return BookRepository(mock_books_collection)

    @pytest.mark.asyncio
    async def test_find_by_id_invalid_identifier(self, repository, mock_books_collection):
        assert await repository.find_by_id("nope") is None
        mock_books_collection.find_one.assert_not_called()

    @pytest.mark.asyncio
    async def test_find_by_id(self, repository, mock_books_collection, sample_book_document):
        mock_books_collection.find_one.return_value = sample_book_document
        book = await repository.find_by_id(str(sample_book_document["_id"]))
        assert book.title == "The Great Gatsby"
        assert book.average_rating == 4.0
        mock_books_collection.find_one.assert_awaited_once_with({"_id": sample_book_document["_id"]})

    @pytest.mark.asyncio
    async def test_find_by_id_missing(self, repository, mock_books_collection):
        assert await repository.find_by_id(str(ObjectId())) is None

    @pytest.mark.asyncio
    async def test_find_all(self, repository, mock_books_collection, sample_book_document):
        mock_books_collection.find = MagicMock(return_value=FakeCursor([sample_book_document]))
        books = await repository.find_all()
        assert [book.title for book in books] == ["The Great Gatsby"]

    @pytest.mark.asyncio
    async def test_find_top_by_average_rating(self, repository, mock_books_collection, sample_book_document):
        cursor = FakeCursor([sample_book_document])
        mock_books_collection.find = MagicMock(return_value=cursor)

        books = await repository.find_top_by_average_rating(3)

        assert len(books) == 1
        assert cursor.sort_args == ("averageRating", DESCENDING)
        assert cursor.limit_value == 3

    @pytest.mark.asyncio
    async def test_insert(self, repository, mock_books_collection, sample_book_payload):
        object_id = ObjectId()
        mock_books_collection.insert_one.return_value = MagicMock(inserted_id=object_id)
        document = dict(sample_book_payload, userId="owner", ratings=[], averageRating=0)

        book = await repository.insert(document)

        assert book.id == str(object_id)
        assert book.user_id == "owner"

    @pytest.mark.asyncio
    async def test_add_rating_is_one_conditional_write(self, repository, mock_books_collection, sample_book_document):
        mock_books_collection.find_one_and_update.return_value = sample_book_document
        book_id = str(sample_book_document["_id"])

        book = await repository.add_rating(book_id, "u9", 2)

        assert book is not None
        mock_books_collection.find_one_and_update.assert_awaited_once()
        args, kwargs = mock_books_collection.find_one_and_update.call_args
        query, pipeline = args
        assert query == {"_id": sample_book_document["_id"], "ratings.userId": {"$ne": "u9"}}
        assert pipeline[0]["$set"]["ratings"]["$concatArrays"][1] == [
            {"userId": {"$literal": "u9"}, "grade": {"$literal": 2}}
        ]
        assert pipeline[1] == {"$set": {"averageRating": AVERAGE_RATING_EXPR}}
        assert kwargs["return_document"] == ReturnDocument.AFTER

    @pytest.mark.asyncio
    async def test_add_rating_no_match(self, repository, mock_books_collection):
        mock_books_collection.find_one_and_update.return_value = None
        assert await repository.add_rating(str(ObjectId()), "u1", 3) is None

    @pytest.mark.asyncio
    async def test_add_rating_invalid_identifier(self, repository, mock_books_collection):
        assert await repository.add_rating("bad", "u1", 3) is None
        mock_books_collection.find_one_and_update.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_wraps_values_as_literals(self, repository, mock_books_collection, sample_book_document):
        mock_books_collection.find_one_and_update.return_value = sample_book_document

        await repository.update(str(sample_book_document["_id"]), {"title": "$where"})

        pipeline = mock_books_collection.find_one_and_update.call_args[0][1]
        assert pipeline == [{"$set": {"title": {"$literal": "$where"}}}]

    @pytest.mark.asyncio
    async def test_update_is_a_single_set_stage(self, repository, mock_books_collection, sample_book_document):
        mock_books_collection.find_one_and_update.return_value = sample_book_document

        await repository.update(str(sample_book_document["_id"]), {"title": "x", "year": 2000})

        pipeline = mock_books_collection.find_one_and_update.call_args[0][1]
        assert pipeline == [{"$set": {"title": {"$literal": "x"}, "year": {"$literal": 2000}}}]

    @pytest.mark.asyncio
    async def test_update_without_fields_reads_book(self, repository, mock_books_collection, sample_book_document):
        mock_books_collection.find_one.return_value = sample_book_document

        book = await repository.update(str(sample_book_document["_id"]), {})

        assert book.title == "The Great Gatsby"
        mock_books_collection.find_one_and_update.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_missing_book(self, repository, mock_books_collection):
        assert await repository.update(str(ObjectId()), {"title": "x"}) is None

    @pytest.mark.asyncio
    async def test_delete(self, repository, mock_books_collection):
        mock_books_collection.delete_one.return_value = MagicMock(deleted_count=1)
        assert await repository.delete(str(ObjectId())) is True

        mock_books_collection.delete_one.return_value = MagicMock(deleted_count=0)
        assert await repository.delete(str(ObjectId())) is False

    @pytest.mark.asyncio
    async def test_store_errors_propagate(self, repository, mock_books_collection):
        mock_books_collection.find_one.side_effect = RuntimeError("connection lost")
        with pytest.raises(RuntimeError):
            await repository.find_by_id(str(ObjectId()))


class TestUserRepository:
    """Test cases for UserRepository."""

    @pytest.fixture
    def collection(self):
        collection = MagicMock()
        collection.find_one = AsyncMock(return_value=None)
        collection.insert_one = AsyncMock()
        return collection

    @pytest.mark.asyncio
    async def test_insert_user(self, collection):
        object_id = ObjectId()
        collection.insert_one.return_value = MagicMock(inserted_id=object_id)

        user = await UserRepository(collection).insert_user("a@example.com", "hash")

        assert user.id == str(object_id)
        collection.insert_one.assert_awaited_once_with(
            {"email": "a@example.com", "passwordHash": "hash", "_id": object_id}
        )

    @pytest.mark.asyncio
    async def test_insert_duplicate_email(self, collection):
        collection.insert_one.side_effect = DuplicateKeyError("E11000 duplicate key")
        with pytest.raises(DuplicateUserError):
            await UserRepository(collection).insert_user("a@example.com", "hash")

    @pytest.mark.asyncio
    async def test_find_by_email(self, collection):
        collection.find_one.return_value = {"_id": ObjectId(), "email": "a@example.com", "passwordHash": "h"}
        user = await UserRepository(collection).find_by_email("a@example.com")
        assert user.email == "a@example.com"
        collection.find_one.assert_awaited_once_with({"email": "a@example.com"})
