"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from bookreview_api.auth import hash_password, issue_token
from bookreview_api.config import APIConfig
from bookreview_api.errors import DuplicateRecordError
from bookreview_api.main import create_app
from bookreview_api.models import (
    BookCreate, BookFilter, BookResponse, MatchMode,
    ReviewResponse, ReviewUser, UserRecord
)

TEST_SECRET = "test-secret-key"


class InMemoryRepository:
    """
    Dict-backed stand-in for CatalogRepository with the same method surface.

    Records are stamped from a clock that advances one second per write, so
    "newest first" is deterministic. The (book, user) and email uniqueness
    rules raise DuplicateRecordError like the MongoDB indexes do.
    """

    def __init__(self):
        self.books: Dict[str, Dict[str, Any]] = {}
        self.reviews: Dict[str, Dict[str, Any]] = {}
        self.users: Dict[str, Dict[str, Any]] = {}
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _now(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    @staticmethod
    def _matches(book: Dict[str, Any], book_filter: BookFilter) -> bool:
        terms = book_filter.terms()
        if not terms:
            return True
        hits = [value.lower() in (book.get(field) or "").lower() for field, value in terms.items()]
        return any(hits) if book_filter.mode == MatchMode.ANY else all(hits)

    def _review(self, doc: Dict[str, Any]) -> ReviewResponse:
        user = self.users.get(doc["user_id"], {})
        return ReviewResponse(
            id=doc["id"],
            content=doc["content"],
            rating=doc["rating"],
            book_id=doc["book_id"],
            user_id=doc["user_id"],
            created_at=doc["created_at"],
            user=ReviewUser(id=doc["user_id"], name=user.get("name", "")),
        )

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy"}

    # Books

    async def create_book(self, data: BookCreate) -> BookResponse:
        doc = {
            "id": str(ObjectId()),
            "title": data.title,
            "author": data.author,
            "description": data.description,
            "genre": data.genre,
            "cover_image": data.cover_image,
            "created_at": self._now(),
        }
        self.books[doc["id"]] = doc
        return BookResponse(**doc)

    async def find_book(self, book_id: str) -> Optional[BookResponse]:
        doc = self.books.get(book_id)
        return BookResponse(**doc) if doc else None

    async def list_books(self, book_filter: BookFilter, skip: int, limit: int) -> List[BookResponse]:
        docs = [doc for doc in self.books.values() if self._matches(doc, book_filter)]
        docs.sort(key=lambda doc: doc["created_at"], reverse=True)
        return [BookResponse(**doc) for doc in docs[skip:skip + limit]]

    async def count_books(self, book_filter: BookFilter) -> int:
        return sum(1 for doc in self.books.values() if self._matches(doc, book_filter))

    # Reviews

    async def find_review(self, review_id: str) -> Optional[ReviewResponse]:
        doc = self.reviews.get(review_id)
        return self._review(doc) if doc else None

    async def find_review_for(self, book_id: str, user_id: str) -> Optional[ReviewResponse]:
        for doc in self.reviews.values():
            if doc["book_id"] == book_id and doc["user_id"] == user_id:
                return self._review(doc)
        return None

    async def list_reviews(self, book_id: str, skip: int, limit: int) -> List[ReviewResponse]:
        docs = [doc for doc in self.reviews.values() if doc["book_id"] == book_id]
        docs.sort(key=lambda doc: doc["created_at"], reverse=True)
        return [self._review(doc) for doc in docs[skip:skip + limit]]

    async def count_reviews(self, book_id: str) -> int:
        return sum(1 for doc in self.reviews.values() if doc["book_id"] == book_id)

    async def average_rating(self, book_id: str) -> float:
        ratings = [doc["rating"] for doc in self.reviews.values() if doc["book_id"] == book_id]
        return sum(ratings) / len(ratings) if ratings else 0

    async def create_review(self, book_id: str, user_id: str, content: str, rating: int) -> ReviewResponse:
        if any(doc["book_id"] == book_id and doc["user_id"] == user_id for doc in self.reviews.values()):
            raise DuplicateRecordError("reviews(book_id, user_id)")
        doc = {
            "id": str(ObjectId()),
            "content": content,
            "rating": rating,
            "book_id": book_id,
            "user_id": user_id,
            "created_at": self._now(),
        }
        self.reviews[doc["id"]] = doc
        return self._review(doc)

    async def update_review(self, review_id: str, changes: Dict[str, Any]) -> Optional[ReviewResponse]:
        doc = self.reviews.get(review_id)
        if doc is None:
            return None
        doc.update(changes)
        return self._review(doc)

    async def delete_review(self, review_id: str) -> bool:
        return self.reviews.pop(review_id, None) is not None

    # Users

    async def find_user(self, user_id: str) -> Optional[UserRecord]:
        doc = self.users.get(user_id)
        return UserRecord(**doc) if doc else None

    async def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        for doc in self.users.values():
            if doc["email"] == email:
                return UserRecord(**doc)
        return None

    async def create_user(self, name: str, email: str, password_hash: str) -> UserRecord:
        if any(doc["email"] == email for doc in self.users.values()):
            raise DuplicateRecordError("users(email)")
        doc = {
            "id": str(ObjectId()),
            "name": name,
            "email": email,
            "password_hash": password_hash,
            "created_at": self._now(),
        }
        self.users[doc["id"]] = doc
        return UserRecord(**doc)

    # Seeding helpers for tests

    def add_user(self, name: str, email: str, password: str = "secret123") -> str:
        user_id = str(ObjectId())
        self.users[user_id] = {
            "id": user_id,
            "name": name,
            "email": email,
            "password_hash": hash_password(password),
            "created_at": self._now(),
        }
        return user_id

    def add_book(self, title: str, author: str, genre: Optional[str] = None) -> str:
        book_id = str(ObjectId())
        self.books[book_id] = {
            "id": book_id,
            "title": title,
            "author": author,
            "description": None,
            "genre": genre,
            "cover_image": None,
            "created_at": self._now(),
        }
        return book_id

    def add_review(self, book_id: str, user_id: str, rating: int, content: str = "Good read") -> str:
        review_id = str(ObjectId())
        self.reviews[review_id] = {
            "id": review_id,
            "content": content,
            "rating": rating,
            "book_id": book_id,
            "user_id": user_id,
            "created_at": self._now(),
        }
        return review_id


@pytest.fixture
def api_config():
    """Settings used by every test app."""
    return APIConfig(
        jwt_secret=TEST_SECRET,
        log_level="WARNING",
        log_format="console",
        _env_file=None
    )


@pytest.fixture
def repository():
    """Empty in-memory repository."""
    return InMemoryRepository()


@pytest.fixture
def app(api_config, repository):
    """Application wired to the in-memory repository."""
    return create_app(api_config, repository=repository)


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def alice(repository):
    return repository.add_user("Alice", "alice@example.com")


@pytest.fixture
def bob(repository):
    return repository.add_user("Bob", "bob@example.com")


@pytest.fixture
def auth_headers(api_config):
    """Build bearer headers for a user id."""
    def _headers(user_id: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {issue_token(user_id, api_config)}"}
    return _headers
