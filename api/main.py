"""
FastAPI main application for the Book Catalogue API.
"""

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

import structlog
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from api.auth import get_current_user_id, get_optional_user_id, token_service
from api.config import config as api_config
from api.forms import read_book_payload
from api.models import (
    BookCreatedResponse,
    ErrorResponse,
    HealthResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RatingRequest,
    SignupRequest,
)
from catalog.access import AccessGuard
from catalog.database import MongoDBManager
from catalog.exceptions import CatalogError
from catalog.images import ImageStore
from catalog.models import Book
from catalog.repositories import BookRepository, UserRepository
from catalog.security import PasswordHasher
from catalog.service import CatalogService, describe_validation_error
from utilities.config import config
from utilities.logger import RequestLogger, setup_logging

# Setup logging
logger = structlog.get_logger(__name__)

# Global services, created in the lifespan
db_manager: Optional[MongoDBManager] = None
catalog_service: Optional[CatalogService] = None

image_store = ImageStore(
    upload_dir=config.get_upload_dir_path(),
    url_prefix=config.upload_url_prefix,
    size=(config.image_width, config.image_height),
    quality=config.image_quality,
)


def build_catalog_service(users: UserRepository, books: BookRepository) -> CatalogService:
    """Wire the catalogue use cases around the given repositories."""
    return CatalogService(
        users=users,
        books=books,
        tokens=token_service,
        passwords=PasswordHasher(),
        images=image_store,
        guard=AccessGuard(require_owner_for_update=api_config.require_owner_for_update),
        best_rating_limit=api_config.best_rating_limit,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug,
    )
    logger.info("Starting Book Catalogue API")

    if api_config.uses_default_secret():
        logger.warning("Using the built-in development SECRET_KEY; set SECRET_KEY in production")
    logger.info("Book update policy", require_owner_for_update=api_config.require_owner_for_update)

    image_store.ensure_directory()

    global db_manager, catalog_service
    try:
        db_manager = MongoDBManager(
            connection_url=config.mongodb_url,
            database_name=config.mongodb_database,
            users_collection=config.users_collection,
            books_collection=config.books_collection,
        )
        await db_manager.connect()
        logger.info("Database connection established")

        catalog_service = build_catalog_service(
            UserRepository(db_manager.users),
            BookRepository(db_manager.books),
        )

    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        raise

    yield

    # Shutdown
    logger.info("Shutting down Book Catalogue API")
    await db_manager.disconnect()


# Create FastAPI application
app = FastAPI(
    title=api_config.api_title,
    description="""
    REST backend for a book cataloguing application.

    ## Features

    * **Accounts**: sign up and log in with email and password
    * **Books**: create books with a cover image, list, fetch, update and delete them
    * **Ratings**: one rating per user per book, with an always up to date average
    * **Best rated**: the three books with the highest average rating

    ## Authentication

    Creating, deleting and rating books require the token returned by login:

    ```
    Authorization: Bearer your_token_here
    ```
    """,
    version=api_config.api_version,
    docs_url="/api-docs",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=api_config.cors_origins,
    allow_credentials=api_config.cors_allow_credentials,
    allow_methods=api_config.cors_allow_methods,
    allow_headers=api_config.cors_allow_headers,
)

# Stored covers
app.mount(
    config.upload_url_prefix,
    StaticFiles(directory=config.get_upload_dir_path(), check_dir=False),
    name="uploads",
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log one line per handled request and echo its request id."""
    request_log = RequestLogger(
        request.method, request.url.path, request_id=request.headers.get("x-request-id")
    )
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception as e:
        request_log.log_failed(str(e), (time.perf_counter() - started) * 1000)
        raise
    if request.url.path != "/health":
        request_log.log_completed(response.status_code, (time.perf_counter() - started) * 1000)
    response.headers["X-Request-ID"] = request_log.request_id
    return response


# Exception handlers
@app.exception_handler(CatalogError)
async def catalog_exception_handler(request: Request, exc: CatalogError):
    """Handle domain errors."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=exc.message,
            detail=exc.detail,
            status_code=exc.status_code
        ).model_dump()
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report malformed requests as 400."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(
            error="Invalid request",
            detail=describe_validation_error(exc),
            status_code=status.HTTP_400_BAD_REQUEST
        ).model_dump()
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=str(exc.detail),
            status_code=exc.status_code
        ).model_dump(),
        headers=exc.headers
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error("Unhandled exception", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="Internal server error",
            detail=str(exc) if api_config.debug else None,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        ).model_dump()
    )


def get_catalog_service() -> CatalogService:
    if catalog_service is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database service not available"
        )
    return catalog_service


# Health check endpoint (no authentication required)
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    try:
        db_status = "unavailable"
        if db_manager:
            health_info = await db_manager.health_check()
            db_status = health_info.get("status", "unknown")

        return HealthResponse(
            status="healthy" if db_status == "healthy" else "degraded",
            timestamp=datetime.now(timezone.utc),
            version=api_config.api_version,
            database_status=db_status
        )
    except Exception as e:
        logger.error("Health check failed", error=str(e))
        return HealthResponse(
            status="unhealthy",
            timestamp=datetime.now(timezone.utc),
            version=api_config.api_version,
            database_status="unhealthy"
        )


# Auth endpoints
@app.post(
    "/api/auth/signup",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Auth"],
)
async def signup(body: SignupRequest):
    """
    Register a new user.

    - **email**: unique email address
    - **password**: password, stored as a bcrypt hash
    """
    await get_catalog_service().signup(body.email, body.password)
    return MessageResponse(message="User created")


@app.post("/api/auth/login", response_model=LoginResponse, tags=["Auth"])
async def login(body: LoginRequest):
    """Authenticate and receive a bearer token."""
    user_id, token = await get_catalog_service().login(body.email, body.password)
    return LoginResponse(user_id=user_id, token=token)


# Books endpoints
@app.post(
    "/api/books",
    response_model=BookCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Books"],
)
async def create_book(request: Request, user_id: str = Depends(get_current_user_id)):
    """
    Create a book owned by the authenticated user.

    Send a multipart form with the book as a JSON string in **book** and an
    optional cover in **image**.
    """
    payload, image = await read_book_payload(request)
    book = await get_catalog_service().create_book(user_id, payload, image)
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={"message": "Book created", "book": book.to_response()}
    )


@app.get("/api/books", response_model=List[Book], tags=["Books"])
async def list_books():
    """Get every book."""
    service = get_catalog_service()
    try:
        books = await service.list_books()
    except Exception as e:
        logger.error("Failed to get books", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve books"
        )
    return JSONResponse(content=[book.to_response() for book in books])


@app.get("/api/books/bestrating", response_model=List[Book], tags=["Books"])
async def best_rated_books():
    """Get the best rated books, highest average first."""
    service = get_catalog_service()
    try:
        books = await service.best_rated_books()
    except Exception as e:
        logger.error("Failed to get best rated books", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve books"
        )
    return JSONResponse(content=[book.to_response() for book in books])


@app.get("/api/books/{book_id}", response_model=Book, tags=["Books"])
async def get_book(book_id: str):
    """
    Get a single book by ID.

    - **book_id**: Book identifier (MongoDB ObjectId)
    """
    book = await get_catalog_service().get_book(book_id)
    return JSONResponse(content=book.to_response())


@app.put("/api/books/{book_id}", response_model=Book, tags=["Books"])
async def update_book(
    book_id: str,
    request: Request,
    user_id: Optional[str] = Depends(get_optional_user_id),
):
    """
    Overwrite some fields of a book.

    Accepts a JSON body or a multipart form (**book** JSON string or flat
    fields, plus an optional **image**).
    """
    payload, image = await read_book_payload(request)
    book = await get_catalog_service().update_book(book_id, payload, image, requester_id=user_id)
    return JSONResponse(content=book.to_response())


@app.delete("/api/books/{book_id}", response_model=MessageResponse, tags=["Books"])
async def delete_book(book_id: str, user_id: str = Depends(get_current_user_id)):
    """Delete a book. Only its owner may do so."""
    await get_catalog_service().delete_book(book_id, user_id)
    return MessageResponse(message="Book deleted")


@app.post("/api/books/{book_id}/rating", response_model=Book, tags=["Books"])
async def rate_book(
    book_id: str,
    body: RatingRequest,
    user_id: str = Depends(get_current_user_id),
):
    """
    Rate a book as the authenticated user.

    - **rating**: grade between 1 and 5
    - **userId**: optional, must be the authenticated user
    """
    book = await get_catalog_service().rate_book(
        book_id, user_id, body.rating, claimed_user_id=body.user_id
    )
    return JSONResponse(content=book.to_response())


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=api_config.host,
        port=api_config.port,
        reload=api_config.debug,
        log_level="info"
    )
