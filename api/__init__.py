"""
FastAPI RESTful API for the Book Catalogue.

This module provides a REST API for:
- User signup and login with bearer tokens
- Book creation with cover images, listing, update and deletion
- Book ratings with a maintained average
"""
