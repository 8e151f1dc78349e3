"""
Pydantic models for book, rating and user documents.

Field names are snake_case in Python and camelCase in MongoDB and on the
wire (``userId``, ``imageUrl``, ``averageRating``); identifiers are exposed
as ``_id`` strings.
"""

from typing import Any, Dict, List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from catalog.ratings import MAX_GRADE, MIN_GRADE, compute_average


def _stringify_id(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    return value


class CatalogModel(BaseModel):
    """Base model mapping snake_case attributes to camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Rating(CatalogModel):
    """
    A single grade left by a user on a book, as stored.

    Stored grades are loaded as they are; range checks apply to client input
    through ``RatingInput``.
    """

    user_id: str = Field(..., description="Identifier of the rater")
    grade: float = Field(..., description="Grade")


class RatingInput(Rating):
    """A grade supplied by a client."""

    user_id: str = Field(..., min_length=1, description="Identifier of the rater")
    grade: float = Field(..., ge=MIN_GRADE, le=MAX_GRADE, strict=True, description="Grade (1-5)")


def _check_unique_raters(ratings: Optional[List[Rating]]) -> Optional[List[Rating]]:
    if ratings:
        seen = set()
        for rating in ratings:
            if rating.user_id in seen:
                raise ValueError(f"user '{rating.user_id}' rated the book more than once")
            seen.add(rating.user_id)
    return ratings


class BookCreate(CatalogModel):
    """
    Book data supplied by a client on creation.

    Owner and average rating are always set server side; client values for
    ``userId`` and ``averageRating`` are dropped.
    """

    title: str = Field(..., min_length=1, description="Book title")
    author: str = Field(..., min_length=1, description="Book author")
    year: int = Field(..., description="Publication year")
    genre: str = Field(..., min_length=1, description="Book genre")
    image_url: Optional[str] = Field(None, min_length=1, description="Cover image URL, unless a file is uploaded")
    ratings: List[RatingInput] = Field(default_factory=list, description="Initial ratings")

    @field_validator("ratings")
    @classmethod
    def validate_unique_raters(cls, v):
        return _check_unique_raters(v)

    def to_document(self, owner_id: str) -> Dict[str, Any]:
        """Build the MongoDB document for a new book owned by ``owner_id``."""
        document = self.model_dump(by_alias=True)
        document["userId"] = owner_id
        document["averageRating"] = compute_average(self.ratings)
        return document


class BookUpdate(CatalogModel):
    """
    Partial book update; fields left out are not touched.

    Ratings are not part of an update. They only grow through rating
    submissions, and ``ratings`` in a payload is dropped like any unknown key.
    """

    title: Optional[str] = Field(None, min_length=1)
    author: Optional[str] = Field(None, min_length=1)
    year: Optional[int] = None
    genre: Optional[str] = Field(None, min_length=1)
    image_url: Optional[str] = Field(None, min_length=1)

    def to_fields(self) -> Dict[str, Any]:
        """Return the camelCase fields to overwrite."""
        return self.model_dump(by_alias=True, exclude_none=True)


class Book(CatalogModel):
    """
    Stored book.

    ``average_rating`` is recomputed from ``ratings`` whenever a Book is
    built, so a loaded document can never disagree with its own ratings.
    """

    id: str = Field(..., alias="_id", description="Unique book identifier")
    user_id: str = Field(..., description="Identifier of the owner")
    title: str
    author: str
    year: int
    genre: str
    image_url: str
    ratings: List[Rating] = Field(default_factory=list)
    average_rating: float = 0.0

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def stringify_ids(cls, v):
        return _stringify_id(v)

    @model_validator(mode="after")
    def sync_average_rating(self) -> "Book":
        self.average_rating = compute_average(self.ratings)
        return self

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "Book":
        return cls.model_validate(document)

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class User(CatalogModel):
    """Stored user credentials."""

    id: str = Field(..., alias="_id")
    email: str
    password_hash: str

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, v):
        return _stringify_id(v)

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "User":
        return cls.model_validate(document)
