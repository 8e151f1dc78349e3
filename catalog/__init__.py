"""
Catalogue domain package.

This package contains:
- Book, rating and user models
- MongoDB connection management and repositories
- Rating aggregation and access control
- Password hashing and bearer token handling
- Cover image processing and storage
"""

__version__ = "1.0.0"
