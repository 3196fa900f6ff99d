"""
API routers. Mounted under ``/api`` by ``create_app``.

Every successful response uses the envelope
``{"status": "success", "data": {...}}`` with ``results`` and ``pagination``
on listings.
"""

from typing import Annotated, Any, Dict

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from bookreview_api.auth import get_config, get_current_user
from bookreview_api.books import BookService
from bookreview_api.config import APIConfig
from bookreview_api.database import CatalogRepository
from bookreview_api.models import (
    BookCreate, BookListQuery, LoginRequest, PaginationQuery,
    ReviewCreate, ReviewUpdate, SearchQuery, SignupRequest
)
from bookreview_api.reviews import ReviewService
from bookreview_api.users import UserService


def success(data: Dict[str, Any], status_code: int = status.HTTP_200_OK, **extra: Any) -> JSONResponse:
    """Wrap a payload in the success envelope."""
    content = {"status": "success", **extra, "data": data}
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content, by_alias=True))


def get_repository(request: Request) -> CatalogRepository:
    return request.app.state.repository


def get_book_service(repository: CatalogRepository = Depends(get_repository)) -> BookService:
    return BookService(repository)


def get_review_service(repository: CatalogRepository = Depends(get_repository)) -> ReviewService:
    return ReviewService(repository)


def get_user_service(
    repository: CatalogRepository = Depends(get_repository),
    config: APIConfig = Depends(get_config)
) -> UserService:
    return UserService(repository, config)


auth_router = APIRouter(prefix="/auth", tags=["Auth"])
books_router = APIRouter(prefix="/books", tags=["Books"])
reviews_router = APIRouter(prefix="/reviews", tags=["Reviews"])


@auth_router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(data: SignupRequest, users: UserService = Depends(get_user_service)):
    """Create an account and return it with a token."""
    user, token = await users.signup(data)
    return success({"user": user, "token": token}, status.HTTP_201_CREATED)


@auth_router.post("/login")
async def login(data: LoginRequest, users: UserService = Depends(get_user_service)):
    """Exchange email and password for a token."""
    user, token = await users.login(data)
    return success({"user": user, "token": token})


@books_router.post("", status_code=status.HTTP_201_CREATED)
async def create_book(
    data: BookCreate,
    user_id: str = Depends(get_current_user),
    books: BookService = Depends(get_book_service)
):
    """Add a book to the catalog. Requires a bearer token."""
    book = await books.create(data)
    return success({"book": book}, status.HTTP_201_CREATED)


@books_router.get("")
async def list_books(
    query: Annotated[BookListQuery, Query()],
    books: BookService = Depends(get_book_service)
):
    """
    List books, newest first.

    - **author**: case-insensitive author substring
    - **genre**: case-insensitive genre substring
    - **page**: page number (starts from 1)
    - **limit**: items per page (1-100)
    """
    found, pagination = await books.list(query)
    return success({"books": found}, results=len(found), pagination=pagination)


@books_router.get("/search")
async def search_books(
    query: Annotated[SearchQuery, Query()],
    books: BookService = Depends(get_book_service)
):
    """
    Search books by title, author, or either (``type=all``, the default).
    """
    found, pagination = await books.search(query)
    return success({"books": found}, results=len(found), pagination=pagination)


@books_router.get("/{book_id}")
async def get_book(
    book_id: str,
    query: Annotated[PaginationQuery, Query()],
    books: BookService = Depends(get_book_service)
):
    """Get a book with its rating aggregates and one page of reviews."""
    book, reviews, pagination = await books.get(book_id, query)
    return success({"book": book, "reviews": reviews, "pagination": pagination})


@books_router.post("/{book_id}/reviews", status_code=status.HTTP_201_CREATED)
async def create_review(
    book_id: str,
    data: ReviewCreate,
    user_id: str = Depends(get_current_user),
    reviews: ReviewService = Depends(get_review_service)
):
    """Review a book. One review per user per book."""
    review = await reviews.create(book_id, user_id, data)
    return success({"review": review}, status.HTTP_201_CREATED)


@reviews_router.put("/{review_id}")
async def update_review(
    review_id: str,
    data: ReviewUpdate,
    user_id: str = Depends(get_current_user),
    reviews: ReviewService = Depends(get_review_service)
):
    """Update your own review."""
    review = await reviews.update(review_id, user_id, data)
    return success({"review": review})


@reviews_router.delete("/{review_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_review(
    review_id: str,
    user_id: str = Depends(get_current_user),
    reviews: ReviewService = Depends(get_review_service)
):
    """Delete your own review."""
    await reviews.delete(review_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


api_router = APIRouter()
api_router.include_router(auth_router)
api_router.include_router(books_router)
api_router.include_router(reviews_router)
