"""
Ownership checks for book mutations.
"""

from typing import Optional

import structlog

from catalog.exceptions import ForbiddenError, MissingTokenError
from catalog.models import Book

logger = structlog.get_logger(__name__)


class AccessGuard:
    """
    Authorizes mutations by comparing the requester with the book owner.

    Deletion always requires ownership. Updates are open unless
    ``require_owner_for_update`` is set.
    """

    def __init__(self, require_owner_for_update: bool = False):
        self.require_owner_for_update = require_owner_for_update

    def authorize_delete(self, book: Book, requester_id: str) -> None:
        if book.user_id != requester_id:
            logger.warning("Delete refused", book_id=book.id, requester_id=requester_id)
            raise ForbiddenError("You can only delete your own books")

    def authorize_update(self, book: Book, requester_id: Optional[str]) -> None:
        if not self.require_owner_for_update:
            return
        if requester_id is None:
            raise MissingTokenError()
        if book.user_id != requester_id:
            logger.warning("Update refused", book_id=book.id, requester_id=requester_id)
            raise ForbiddenError("You can only update your own books")
