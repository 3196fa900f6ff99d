"""
MongoDB repository for the Book Review API.

``CatalogRepository`` is the only code that talks to the database. It takes
and returns API models, so the services above it never see driver query
syntax.
"""

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from bookreview_api.errors import DuplicateRecordError
from bookreview_api.models import (
    BookCreate, BookFilter, BookResponse, MatchMode,
    ReviewResponse, ReviewUser, UserRecord
)

logger = structlog.get_logger(__name__)


def to_object_id(value: str) -> Optional[ObjectId]:
    """Parse an identifier, returning None when it is not a valid ObjectId."""
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def build_book_query(book_filter: BookFilter) -> Dict[str, Any]:
    """
    Translate a BookFilter into a MongoDB filter document.

    Terms are escaped and matched as case-insensitive substrings.
    """
    clauses = [
        {field: {"$regex": re.escape(value), "$options": "i"}}
        for field, value in book_filter.terms().items()
    ]
    if not clauses:
        return {}
    if len(clauses) == 1:
        return clauses[0]
    if book_filter.mode == MatchMode.ANY:
        return {"$or": clauses}
    return {"$and": clauses}


def _book_from_doc(doc: Dict[str, Any]) -> BookResponse:
    return BookResponse(
        id=str(doc["_id"]),
        title=doc["title"],
        author=doc["author"],
        description=doc.get("description"),
        genre=doc.get("genre"),
        cover_image=doc.get("cover_image"),
        created_at=doc["created_at"],
    )


def _review_from_doc(doc: Dict[str, Any]) -> ReviewResponse:
    user = doc.get("user") or {}
    return ReviewResponse(
        id=str(doc["_id"]),
        content=doc["content"],
        rating=doc["rating"],
        book_id=str(doc["book_id"]),
        user_id=str(doc["user_id"]),
        created_at=doc["created_at"],
        user=ReviewUser(id=str(doc["user_id"]), name=user.get("name", "")),
    )


def _user_from_doc(doc: Dict[str, Any]) -> UserRecord:
    return UserRecord(
        id=str(doc["_id"]),
        name=doc["name"],
        email=doc["email"],
        password_hash=doc["password"],
        created_at=doc["created_at"],
    )


def _reviewer_stages() -> List[Dict[str, Any]]:
    """Pipeline stages attaching the reviewer's name, and nothing else, as ``user``."""
    return [
        {"$lookup": {
            "from": "users",
            "localField": "user_id",
            "foreignField": "_id",
            "as": "user",
        }},
        {"$set": {"user": {"name": {"$arrayElemAt": ["$user.name", 0]}}}},
    ]


class CatalogRepository:
    """Persistence façade over the ``books``, ``reviews`` and ``users`` collections."""

    def __init__(self, database: AsyncIOMotorDatabase):
        self.database = database
        self.books_collection = database.books
        self.reviews_collection = database.reviews
        self.users_collection = database.users

    async def create_indexes(self) -> None:
        """
        Create indexes for the query patterns and the uniqueness rules.

        The compound unique index on reviews is what finally rejects a second
        review by the same user for the same book.
        """
        try:
            await self.users_collection.create_index("email", unique=True)
            await self.books_collection.create_index([("created_at", DESCENDING)])
            await self.reviews_collection.create_index(
                [("book_id", ASCENDING), ("user_id", ASCENDING)], unique=True
            )
            await self.reviews_collection.create_index([("book_id", ASCENDING), ("created_at", DESCENDING)])
            logger.info("Successfully created MongoDB indexes")
        except Exception as e:
            logger.error("Failed to create indexes", error=str(e))
            raise

    async def health_check(self) -> Dict[str, Any]:
        """Ping the database."""
        try:
            await self.database.command("ping")
            return {"status": "healthy"}
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {"status": "unhealthy", "error": str(e)}

    # Books

    async def create_book(self, data: BookCreate) -> BookResponse:
        doc = {
            "title": data.title,
            "author": data.author,
            "description": data.description,
            "genre": data.genre,
            "cover_image": data.cover_image,
            "created_at": datetime.now(timezone.utc),
        }
        result = await self.books_collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        logger.debug("Inserted book", book_id=str(result.inserted_id))
        return _book_from_doc(doc)

    async def find_book(self, book_id: str) -> Optional[BookResponse]:
        object_id = to_object_id(book_id)
        if object_id is None:
            return None
        doc = await self.books_collection.find_one({"_id": object_id})
        return _book_from_doc(doc) if doc else None

    async def list_books(self, book_filter: BookFilter, skip: int, limit: int) -> List[BookResponse]:
        """Return one page of matching books, newest first."""
        cursor = (
            self.books_collection.find(build_book_query(book_filter))
            .sort([("created_at", DESCENDING), ("_id", DESCENDING)])
            .skip(skip)
            .limit(limit)
        )
        docs = await cursor.to_list(length=limit)
        return [_book_from_doc(doc) for doc in docs]

    async def count_books(self, book_filter: BookFilter) -> int:
        return await self.books_collection.count_documents(build_book_query(book_filter))

    # Reviews

    async def find_review(self, review_id: str) -> Optional[ReviewResponse]:
        object_id = to_object_id(review_id)
        if object_id is None:
            return None
        return await self._find_one_review({"_id": object_id})

    async def _find_one_review(self, match: Dict[str, Any]) -> Optional[ReviewResponse]:
        pipeline = [{"$match": match}, {"$limit": 1}, *_reviewer_stages()]
        docs = await self.reviews_collection.aggregate(pipeline).to_list(length=1)
        return _review_from_doc(docs[0]) if docs else None

    async def find_review_for(self, book_id: str, user_id: str) -> Optional[ReviewResponse]:
        """Return the review a user wrote for a book, if any."""
        book_oid, user_oid = to_object_id(book_id), to_object_id(user_id)
        if book_oid is None or user_oid is None:
            return None
        return await self._find_one_review({"book_id": book_oid, "user_id": user_oid})

    async def list_reviews(self, book_id: str, skip: int, limit: int) -> List[ReviewResponse]:
        """Return one page of a book's reviews, newest first, with reviewer names."""
        object_id = to_object_id(book_id)
        if object_id is None:
            return []
        pipeline = [
            {"$match": {"book_id": object_id}},
            {"$sort": {"created_at": -1, "_id": -1}},
            {"$skip": skip},
            {"$limit": limit},
            *_reviewer_stages(),
        ]
        docs = await self.reviews_collection.aggregate(pipeline).to_list(length=limit)
        return [_review_from_doc(doc) for doc in docs]

    async def count_reviews(self, book_id: str) -> int:
        object_id = to_object_id(book_id)
        if object_id is None:
            return 0
        return await self.reviews_collection.count_documents({"book_id": object_id})

    async def average_rating(self, book_id: str) -> float:
        """Mean rating over every review of a book, 0 when there are none."""
        object_id = to_object_id(book_id)
        if object_id is None:
            return 0
        pipeline = [
            {"$match": {"book_id": object_id}},
            {"$group": {"_id": None, "average": {"$avg": "$rating"}}},
        ]
        docs = await self.reviews_collection.aggregate(pipeline).to_list(length=1)
        if not docs or docs[0]["average"] is None:
            return 0
        return float(docs[0]["average"])

    async def create_review(self, book_id: str, user_id: str, content: str, rating: int) -> ReviewResponse:
        """
        Insert a review.

        Raises:
            DuplicateRecordError: If the user already reviewed the book
        """
        doc = {
            "content": content,
            "rating": rating,
            "book_id": ObjectId(book_id),
            "user_id": ObjectId(user_id),
            "created_at": datetime.now(timezone.utc),
        }
        try:
            result = await self.reviews_collection.insert_one(doc)
        except DuplicateKeyError as e:
            logger.warning("Duplicate review rejected by index", book_id=book_id, user_id=user_id)
            raise DuplicateRecordError(str(e)) from e
        return await self.find_review(str(result.inserted_id))

    async def update_review(self, review_id: str, changes: Dict[str, Any]) -> Optional[ReviewResponse]:
        """Apply a partial update and return the stored review."""
        object_id = to_object_id(review_id)
        if object_id is None:
            return None
        if changes:
            updated = await self.reviews_collection.find_one_and_update(
                {"_id": object_id},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
            if updated is None:
                return None
        return await self.find_review(review_id)

    async def delete_review(self, review_id: str) -> bool:
        object_id = to_object_id(review_id)
        if object_id is None:
            return False
        result = await self.reviews_collection.delete_one({"_id": object_id})
        return result.deleted_count > 0

    # Users

    async def find_user(self, user_id: str) -> Optional[UserRecord]:
        object_id = to_object_id(user_id)
        if object_id is None:
            return None
        doc = await self.users_collection.find_one({"_id": object_id})
        return _user_from_doc(doc) if doc else None

    async def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        doc = await self.users_collection.find_one({"email": email})
        return _user_from_doc(doc) if doc else None

    async def create_user(self, name: str, email: str, password_hash: str) -> UserRecord:
        """
        Insert a user.

        Raises:
            DuplicateRecordError: If the email is already registered
        """
        doc = {
            "name": name,
            "email": email,
            "password": password_hash,
            "created_at": datetime.now(timezone.utc),
        }
        try:
            result = await self.users_collection.insert_one(doc)
        except DuplicateKeyError as e:
            logger.warning("Duplicate email rejected by index", email=email)
            raise DuplicateRecordError(str(e)) from e
        doc["_id"] = result.inserted_id
        return _user_from_doc(doc)
