"""
Book operations: create, list, get with reviews, search.
"""

import asyncio
from typing import List, Tuple

import structlog

from bookreview_api.database import CatalogRepository
from bookreview_api.errors import NotFoundError
from bookreview_api.models import (
    BookCreate, BookDetailResponse, BookFilter, BookListQuery, BookPagination,
    BookResponse, MatchMode, PaginationQuery, ReviewPagination, ReviewResponse,
    SearchQuery, SearchType
)

logger = structlog.get_logger(__name__)

BOOK_NOT_FOUND = "Book not found"


def build_list_filter(query: BookListQuery) -> BookFilter:
    """Author and genre filters, both required to match when both are given."""
    return BookFilter(author=query.author, genre=query.genre, mode=MatchMode.ALL)


def build_search_filter(query: SearchQuery) -> BookFilter:
    """Match the query against the title, the author, or either of them."""
    if query.type == SearchType.TITLE:
        return BookFilter(title=query.query)
    if query.type == SearchType.AUTHOR:
        return BookFilter(author=query.query)
    return BookFilter(title=query.query, author=query.query, mode=MatchMode.ANY)


class BookService:
    """Book use cases on top of the repository."""

    def __init__(self, repository: CatalogRepository):
        self.repository = repository

    async def create(self, data: BookCreate) -> BookResponse:
        book = await self.repository.create_book(data)
        logger.info("Book created", book_id=book.id, title=book.title)
        return book

    async def _page(
        self, book_filter: BookFilter, page: PaginationQuery
    ) -> Tuple[List[BookResponse], BookPagination]:
        books, total = await asyncio.gather(
            self.repository.list_books(book_filter, page.skip, page.limit),
            self.repository.count_books(book_filter),
        )
        return books, BookPagination.compute(total, page.page, page.limit)

    async def list(self, query: BookListQuery) -> Tuple[List[BookResponse], BookPagination]:
        """Newest-first page of books filtered by author and genre."""
        return await self._page(build_list_filter(query), query)

    async def search(self, query: SearchQuery) -> Tuple[List[BookResponse], BookPagination]:
        """Newest-first page of books matching a search query."""
        return await self._page(build_search_filter(query), query)

    async def get(
        self, book_id: str, page: PaginationQuery
    ) -> Tuple[BookDetailResponse, List[ReviewResponse], ReviewPagination]:
        """
        Fetch a book with one page of its reviews.

        The average rating and review total cover every review of the book,
        not just the requested page.

        Raises:
            NotFoundError: If the book does not exist
        """
        book = await self.repository.find_book(book_id)
        if book is None:
            raise NotFoundError(BOOK_NOT_FOUND)

        reviews, total_reviews, average = await asyncio.gather(
            self.repository.list_reviews(book_id, page.skip, page.limit),
            self.repository.count_reviews(book_id),
            self.repository.average_rating(book_id),
        )
        detail = BookDetailResponse(
            **book.model_dump(),
            average_rating=average or 0,
            total_reviews=total_reviews,
        )
        return detail, reviews, ReviewPagination.compute(total_reviews, page.page, page.limit)
