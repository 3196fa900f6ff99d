"""
API models and schemas for the FastAPI application.

Request bodies and query strings are validated here before any handler runs.
Wire names are camelCase (``coverImage``, ``createdAt``); Python code uses
snake_case through the alias generator.
"""

import math
from datetime import datetime
from enum import Enum
from typing import Annotated, ClassVar, Dict, List, Optional

from pydantic import AfterValidator, BaseModel, EmailStr, Field, HttpUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialised with camelCase keys."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
    }


class SearchType(str, Enum):
    """Fields a search query is matched against."""
    TITLE = "title"
    AUTHOR = "author"
    ALL = "all"


class MatchMode(str, Enum):
    """How the terms of a BookFilter combine."""
    ALL = "all"  # every term must match
    ANY = "any"  # at least one term must match


_http_url = TypeAdapter(HttpUrl)


def _check_url(value: str) -> str:
    """Require an http(s) URL but keep the text exactly as sent."""
    try:
        _http_url.validate_python(value)
    except PydanticValidationError:
        raise ValueError("Input should be a valid http or https URL")
    return value


UrlString = Annotated[str, AfterValidator(_check_url)]


# Query strings

class PaginationQuery(BaseModel):
    """Page selection shared by every listing endpoint."""
    page: int = Field(1, gt=0, description="Page number (starts from 1)")
    limit: int = Field(10, gt=0, le=100, description="Items per page (1-100)")

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


class BookListQuery(PaginationQuery):
    """Query parameters for book listing."""
    author: Optional[str] = Field(None, description="Case-insensitive author substring")
    genre: Optional[str] = Field(None, description="Case-insensitive genre substring")


class SearchQuery(PaginationQuery):
    """Query parameters for book search."""
    query: str = Field(..., min_length=1, description="Text to look for")
    type: SearchType = Field(SearchType.ALL, description="Field to search: title, author or all")


class BookFilter(BaseModel):
    """
    Storage-neutral book filter.

    Each set term is a case-insensitive substring match on the field of the
    same name; unset and empty values are not terms. ``mode`` decides whether
    all terms or any one of them must hold; an empty filter matches every
    book.
    """
    title: Optional[str] = None
    author: Optional[str] = None
    genre: Optional[str] = None
    mode: MatchMode = MatchMode.ALL

    def terms(self) -> Dict[str, str]:
        return {
            field: value
            for field, value in (("title", self.title), ("author", self.author), ("genre", self.genre))
            if value
        }


# Request bodies

class BookCreate(CamelModel):
    """Payload for creating a book."""
    title: str = Field(..., min_length=1, description="Book title")
    author: str = Field(..., min_length=1, description="Book author")
    description: Optional[str] = Field(None, description="Book description")
    genre: Optional[str] = Field(None, description="Book genre")
    cover_image: Optional[UrlString] = Field(None, description="Cover image URL")


class ReviewCreate(CamelModel):
    """Payload for creating a review."""
    content: str = Field(..., min_length=1, description="Review text")
    rating: int = Field(..., ge=1, le=5, strict=True, description="Rating from 1 to 5")


class ReviewUpdate(CamelModel):
    """Partial review update; omitted fields keep their stored value."""
    content: Optional[str] = Field(None, min_length=1, description="Review text")
    rating: Optional[int] = Field(None, ge=1, le=5, strict=True, description="Rating from 1 to 5")

    def changes(self) -> Dict[str, object]:
        return self.model_dump(exclude_none=True)


class SignupRequest(CamelModel):
    name: str = Field(..., min_length=2)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


# Stored records and responses

class BookResponse(CamelModel):
    """Book as returned by the API."""
    id: str = Field(..., description="Unique book identifier")
    title: str = Field(..., description="Book title")
    author: str = Field(..., description="Book author")
    description: Optional[str] = Field(None, description="Book description")
    genre: Optional[str] = Field(None, description="Book genre")
    cover_image: Optional[str] = Field(None, description="Cover image URL")
    created_at: datetime = Field(..., description="Creation timestamp")


class BookDetailResponse(BookResponse):
    """Book with aggregates computed over all of its reviews."""
    average_rating: float = Field(0, description="Mean rating, 0 without reviews")
    total_reviews: int = Field(0, description="Number of reviews")


class ReviewUser(CamelModel):
    """Public view of a reviewer."""
    id: str
    name: str


class ReviewResponse(CamelModel):
    """Review as returned by the API."""
    id: str
    content: str
    rating: int
    book_id: str
    user_id: str
    created_at: datetime
    user: ReviewUser


class UserRecord(CamelModel):
    """Stored user, including the password hash. Never serialised to clients."""
    id: str
    name: str
    email: str
    password_hash: str
    created_at: datetime


class UserResponse(CamelModel):
    """Public user profile."""
    id: str
    name: str
    email: str
    created_at: datetime

    @classmethod
    def from_record(cls, record: UserRecord) -> "UserResponse":
        return cls(id=record.id, name=record.name, email=record.email, created_at=record.created_at)


class PaginationMeta(CamelModel):
    """Pagination block; subclasses name the total field."""
    total_field: ClassVar[str] = "total"

    total_pages: int
    current_page: int
    limit: int
    has_next_page: bool
    has_prev_page: bool

    @classmethod
    def compute(cls, total: int, page: int, limit: int):
        total_pages = math.ceil(total / limit)
        return cls(**{
            cls.total_field: total,
            "total_pages": total_pages,
            "current_page": page,
            "limit": limit,
            "has_next_page": page < total_pages,
            "has_prev_page": page > 1,
        })


class BookPagination(PaginationMeta):
    total_field: ClassVar[str] = "total_books"

    total_books: int


class ReviewPagination(PaginationMeta):
    total_field: ClassVar[str] = "total_reviews"

    total_reviews: int


class FieldError(BaseModel):
    """One validation failure."""
    path: str = Field(..., description="Dotted path of the offending field")
    message: str = Field(..., description="What is wrong with it")


class ErrorResponse(BaseModel):
    """Failure envelope."""
    status: str = Field(..., description="'fail' for client errors, 'error' for server errors")
    message: str = Field(..., description="Human-readable error message")
    errors: Optional[List[FieldError]] = Field(None, description="Validation failures")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field("ok", description="'ok', or 'unavailable' when the database does not answer")
