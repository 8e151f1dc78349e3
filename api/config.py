"""
API configuration settings.
"""

from typing import List

from pydantic_settings import BaseSettings

DEFAULT_SECRET_KEY = "your-secret-key-change-in-production"


class APIConfig(BaseSettings):
    """API configuration settings."""

    # API Settings
    api_title: str = "Book Catalogue API"
    api_version: str = "1.0.0"
    api_description: str = "REST backend for cataloguing and rating books"

    # Server Settings
    host: str = "0.0.0.0"
    port: int = 4000
    debug: bool = False

    # Security Settings
    secret_key: str = DEFAULT_SECRET_KEY
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # Book update policy: False keeps updates open to anyone
    require_owner_for_update: bool = False

    # Number of books returned by /api/books/bestrating
    best_rating_limit: int = 3

    # CORS Settings
    cors_origins: List[str] = ["http://localhost:3000"]
    cors_allow_credentials: bool = True
    cors_allow_methods: List[str] = ["GET", "POST", "PUT", "DELETE"]
    cors_allow_headers: List[str] = ["Content-Type", "Authorization"]

    model_config = {
        "env_file": ".env",
        "extra": "ignore",  # Ignore extra fields from .env
        "frozen": True,
    }

    def uses_default_secret(self) -> bool:
        return self.secret_key == DEFAULT_SECRET_KEY


# Global config instance
config = APIConfig()
