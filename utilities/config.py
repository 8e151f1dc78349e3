"""
Configuration management using environment variables.
Handles storage, upload and logging settings with proper validation and defaults.
"""

from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path


class CatalogConfig(BaseSettings):
    """
    Configuration class for the catalogue backend.
    Uses pydantic BaseSettings for environment variable management.
    """

    # MongoDB Configuration
    mongodb_url: str = Field(default="mongodb://localhost:27017")
    mongodb_database: str = Field(default="book_catalog")
    users_collection: str = Field(default="users")
    books_collection: str = Field(default="books")

    # Cover image storage
    upload_dir: str = Field(default="uploads")
    upload_url_prefix: str = Field(default="/uploads")
    image_width: int = Field(default=206)
    image_height: int = Field(default=260)
    image_quality: int = Field(default=80)

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    # Development/Testing
    debug: bool = Field(default=False)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra fields from .env
        frozen=True,
    )

    @field_validator('image_width', 'image_height')
    @classmethod
    def validate_image_size(cls, v):
        """Ensure cover dimensions are reasonable."""
        if v < 16 or v > 4096:
            raise ValueError('image dimensions must be between 16 and 4096 pixels')
        return v

    @field_validator('image_quality')
    @classmethod
    def validate_image_quality(cls, v):
        if v < 1 or v > 100:
            raise ValueError('image_quality must be between 1 and 100')
        return v

    @field_validator('upload_url_prefix')
    @classmethod
    def validate_url_prefix(cls, v):
        """Normalise the public prefix to a leading slash and no trailing slash."""
        v = "/" + v.strip("/")
        if v == "/":
            raise ValueError('upload_url_prefix must not be the site root')
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level must be one of: {valid_levels}')
        return v.upper()

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ['json', 'console']
        if v.lower() not in valid_formats:
            raise ValueError(f'log_format must be one of: {valid_formats}')
        return v.lower()

    def get_log_file_path(self) -> Optional[Path]:
        """Get log file path as Path object."""
        if self.log_file:
            return Path(self.log_file)
        return None

    def get_upload_dir_path(self) -> Path:
        """Get cover image directory as Path object."""
        return Path(self.upload_dir)


# Global configuration instance
config = CatalogConfig()
