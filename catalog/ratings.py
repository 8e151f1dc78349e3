"""
Rating aggregation.

A book's average rating is the arithmetic mean of the grades in its
embedded rating list, or 0 when the list is empty. Submissions are
validated here and then handed to the repository as a single conditional
write, so two raters hitting the same book never overwrite each other.
"""

import math
from typing import Iterable, Sequence

import structlog

from catalog.exceptions import BookNotFoundError, DuplicateRatingError, InvalidRatingError

logger = structlog.get_logger(__name__)

MIN_GRADE = 1
MAX_GRADE = 5


def compute_average(ratings: Sequence) -> float:
    """
    Compute the mean grade of a rating list.

    Args:
        ratings: Objects exposing a ``grade`` attribute

    Returns:
        Exact quotient of the grade sum by the rating count, 0.0 if empty
    """
    if not ratings:
        return 0.0
    return sum(rating.grade for rating in ratings) / len(ratings)


def validate_grade(grade) -> float:
    """
    Reject anything that is not a finite number in [MIN_GRADE, MAX_GRADE].

    Booleans are refused even though Python treats them as ints.
    """
    if isinstance(grade, bool) or not isinstance(grade, (int, float)):
        raise InvalidRatingError(detail=f"expected a number, got {type(grade).__name__}")
    if not math.isfinite(grade) or not MIN_GRADE <= grade <= MAX_GRADE:
        raise InvalidRatingError(detail=f"got {grade}")
    return grade


def find_rating(ratings: Iterable, user_id: str):
    """Return the rating left by ``user_id``, or None."""
    for rating in ratings:
        if rating.user_id == user_id:
            return rating
    return None


class RatingAggregator:
    """Accepts ratings for books, one per user, keeping the average in sync."""

    def __init__(self, book_repository):
        self.book_repository = book_repository

    async def submit_rating(self, book_id: str, user_id: str, grade):
        """
        Append a rating to a book and return the updated book.

        Args:
            book_id: Identifier of the book being rated
            user_id: Identifier of the rater
            grade: Numeric grade in [1, 5]

        Raises:
            InvalidRatingError: grade rejected before any store access
            DuplicateRatingError: user already rated this book
            BookNotFoundError: no book with this identifier
        """
        grade = validate_grade(grade)

        book = await self.book_repository.add_rating(book_id, user_id, grade)
        if book is not None:
            logger.info(
                "Rating accepted",
                book_id=book_id,
                user_id=user_id,
                grade=grade,
                ratings=len(book.ratings),
                average_rating=book.average_rating,
            )
            return book

        # The conditional write matched nothing: find out why
        existing = await self.book_repository.find_by_id(book_id)
        if existing is None:
            raise BookNotFoundError(book_id)

        previous = find_rating(existing.ratings, user_id)
        logger.warning(
            "Duplicate rating rejected",
            book_id=book_id,
            user_id=user_id,
            previous_grade=previous.grade if previous else None,
        )
        raise DuplicateRatingError()
