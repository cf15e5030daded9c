from jose import ExpiredSignatureError, JWTError, jwt
import logging

from core.config import JWT_SECRET

logger = logging.getLogger("interview_room.auth")

JWT_ALGORITHMS = ["HS256"]


class AuthError(Exception):
    def __init__(self, message: str, expired: bool = False):
        super().__init__(message)
        self.message = message
        self.expired = expired


def resolve_user_id_from_token(token: str, secret: str | None = None) -> str:
    """
    Verifies signature and expiry of an HS256 token and returns its user id.
    Tokens are issued with an `id` claim; `sub` is accepted as a fallback.
    """
    secret = secret if secret is not None else JWT_SECRET
    if not secret:
        logger.error("JWT_SECRET is not configured; rejecting token")
        raise AuthError("Invalid or expired token")

    try:
        payload = jwt.decode(token, secret, algorithms=JWT_ALGORITHMS)
    except ExpiredSignatureError:
        raise AuthError("Token expired", expired=True)
    except JWTError:
        raise AuthError("Invalid or expired token")

    user_id = (payload or {}).get("id") or (payload or {}).get("sub")
    if not user_id:
        raise AuthError("Invalid or expired token")
    return str(user_id)
