"""
FastAPI RESTful API for a book-review catalog.

This package provides:
- Signup and login with bearer tokens
- Book creation, listing, filtering and search with pagination
- Reviews with one review per user per book and owner-only changes
"""
