"""
Review operations with ownership and one-review-per-book rules.
"""

import structlog

from bookreview_api.books import BOOK_NOT_FOUND
from bookreview_api.database import CatalogRepository
from bookreview_api.errors import ConflictError, DuplicateRecordError, ForbiddenError, NotFoundError
from bookreview_api.models import ReviewCreate, ReviewResponse, ReviewUpdate

logger = structlog.get_logger(__name__)

REVIEW_NOT_FOUND = "Review not found"
ALREADY_REVIEWED = "You have already reviewed this book"


class ReviewService:
    """Review use cases on top of the repository."""

    def __init__(self, repository: CatalogRepository):
        self.repository = repository

    async def create(self, book_id: str, user_id: str, data: ReviewCreate) -> ReviewResponse:
        """
        Post a review for a book.

        The pre-check answers the common case; the unique index on
        (book, user) catches concurrent duplicates.

        Raises:
            NotFoundError: If the book does not exist
            ConflictError: If the user already reviewed the book
        """
        if await self.repository.find_book(book_id) is None:
            raise NotFoundError(BOOK_NOT_FOUND)

        if await self.repository.find_review_for(book_id, user_id) is not None:
            logger.warning("Duplicate review attempt", book_id=book_id, user_id=user_id)
            raise ConflictError(ALREADY_REVIEWED)

        try:
            review = await self.repository.create_review(book_id, user_id, data.content, data.rating)
        except DuplicateRecordError:
            raise ConflictError(ALREADY_REVIEWED)

        logger.info("Review created", review_id=review.id, book_id=book_id, user_id=user_id)
        return review

    async def _owned_review(self, review_id: str, user_id: str, action: str) -> ReviewResponse:
        review = await self.repository.find_review(review_id)
        if review is None:
            raise NotFoundError(REVIEW_NOT_FOUND)
        if review.user_id != user_id:
            logger.warning("Review ownership check failed", review_id=review_id, user_id=user_id, action=action)
            raise ForbiddenError(f"You can only {action} your own reviews")
        return review

    async def update(self, review_id: str, user_id: str, data: ReviewUpdate) -> ReviewResponse:
        """
        Change the content and/or rating of the caller's review.

        Raises:
            NotFoundError: If the review does not exist
            ForbiddenError: If the caller did not write it
        """
        await self._owned_review(review_id, user_id, "update")
        changes = data.changes()
        review = await self.repository.update_review(review_id, changes)
        if review is None:
            raise NotFoundError(REVIEW_NOT_FOUND)
        logger.info("Review updated", review_id=review_id, fields=sorted(changes))
        return review

    async def delete(self, review_id: str, user_id: str) -> None:
        """
        Delete the caller's review.

        Raises:
            NotFoundError: If the review does not exist
            ForbiddenError: If the caller did not write it
        """
        await self._owned_review(review_id, user_id, "delete")
        if not await self.repository.delete_review(review_id):
            raise NotFoundError(REVIEW_NOT_FOUND)
        logger.info("Review deleted", review_id=review_id, user_id=user_id)
