"""
Token service - access token issuing and decoding (PyJWT)
"""
from typing import Optional
from datetime import datetime, timedelta, timezone
import jwt
import uuid

from application.dto import Principal
from core.config import settings
from core.exceptions import UnauthorizedException, TokenExpiredException
from core.logging_config import get_logger


logger = get_logger(__name__)


class TokenService:
    """
    Access tokens are issued by the marketplace auth service; this service only
    needs to read them. ``create_access_token`` exists for tooling and tests.
    """

    def __init__(
        self,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
    ):
        self._secret_key = secret_key or settings.SECRET_KEY
        self._algorithm = algorithm or settings.ALGORITHM

    def create_access_token(
        self,
        user_id: int,
        *,
        is_superuser: bool = False,
        expires_minutes: Optional[int] = None,
    ) -> str:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )
        to_encode = {
            "sub": str(user_id),
            "is_superuser": is_superuser,
            "exp": expire,
            "type": "access",
            "jti": str(uuid.uuid4()),
        }
        return jwt.encode(to_encode, self._secret_key, algorithm=self._algorithm)

    def decode_access_token(self, token: str) -> Principal:
        """Decode an access JWT into a Principal.

        Expired token: TokenExpiredException.
        Invalid token, wrong type or missing subject: UnauthorizedException.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredException()
        except jwt.InvalidTokenError as e:
            logger.warning("invalid_access_token", error=str(e))
            raise UnauthorizedException("Invalid authentication credentials")

        if payload.get("type", "access") != "access":
            raise UnauthorizedException("Wrong token type")

        subject = payload.get("sub")
        try:
            user_id = int(subject)
        except (TypeError, ValueError):
            raise UnauthorizedException("Token subject is missing")

        exp = payload.get("exp")
        return Principal(
            user_id=user_id,
            is_superuser=bool(payload.get("is_superuser", False)),
            expires_at=datetime.fromtimestamp(exp, tz=timezone.utc) if exp else None,
        )
