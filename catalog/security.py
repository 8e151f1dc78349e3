"""
Password hashing and bearer token handling.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from catalog.exceptions import ExpiredTokenError, InvalidTokenError, MissingTokenError

logger = structlog.get_logger(__name__)


class PasswordHasher:
    """Salted one-way password hashing backed by bcrypt."""

    def __init__(self):
        self._context = CryptContext(schemes=["bcrypt"], deprecated="auto")

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, password: str, hashed: str) -> bool:
        try:
            return self._context.verify(password, hashed)
        except ValueError:
            # Stored value is not a recognisable hash
            logger.warning("Unrecognised password hash format")
            return False


class TokenService:
    """
    Issues and verifies signed bearer tokens.

    Tokens are stateless: a token is valid while its signature checks out
    and its ``exp`` claim lies in the future. Nothing is stored server side.
    """

    def __init__(self, secret_key: str, algorithm: str = "HS256", expire_minutes: int = 60):
        if not secret_key:
            raise ValueError("secret_key must not be empty")
        self._secret_key = secret_key
        self.algorithm = algorithm
        self.lifetime = timedelta(minutes=expire_minutes)

    def issue(self, user_id: str, now: Optional[datetime] = None) -> str:
        """
        Create a token for ``user_id`` expiring one lifetime after ``now``.

        Args:
            user_id: Identifier embedded in the ``userId`` claim
            now: Issuance instant, defaults to the current UTC time
        """
        issued_at = now or datetime.now(timezone.utc)
        claims = {
            "userId": user_id,
            "iat": issued_at,
            "exp": issued_at + self.lifetime,
        }
        return jwt.encode(claims, self._secret_key, algorithm=self.algorithm)

    def verify(self, token: Optional[str]) -> str:
        """
        Validate a token and return the user id it carries.

        Raises:
            MissingTokenError: no token presented
            ExpiredTokenError: signature valid but past expiration
            InvalidTokenError: bad signature, malformed token or missing claim
        """
        if not token:
            raise MissingTokenError()

        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self.algorithm],
                options={"require_exp": True},
            )
        except ExpiredSignatureError:
            raise ExpiredTokenError()
        except JWTError as e:
            logger.warning("Token rejected", error=str(e))
            raise InvalidTokenError(detail=str(e))

        user_id = payload.get("userId")
        if not isinstance(user_id, str) or not user_id:
            raise InvalidTokenError(detail="missing userId claim")
        return user_id
