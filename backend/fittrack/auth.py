"""Authentication helpers and FastAPI security dependencies.

Tokens are HS256 JWTs carrying the user's `id` and `is_admin` flag. The
`get_current_user` dependency only validates the bearer token and returns
the caller identity; endpoints that need the full account load it
themselves.
"""

from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt
import logging

from .config import Settings

logger = logging.getLogger("fittrack.auth")

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    """Caller identity extracted from a validated token."""
    id: int
    is_admin: bool = False

    @property
    def document_owner(self) -> str:
        """Owner key used for records in the document store."""
        return str(self.id)


def decode_token(token: str, settings: Settings) -> dict:
    """Decode and verify a JWT token.

    Returns the decoded payload on success or raises an HTTPException
    with status 401 on failure.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail='Token expired')
    except jwt.InvalidTokenError as e:
        logger.warning("invalid token: %s", e)
        raise HTTPException(status_code=401, detail='Invalid token')


def get_current_user(request: Request, credentials: HTTPAuthorizationCredentials = Security(bearer_scheme)) -> CurrentUser:
    """FastAPI dependency returning the authenticated caller.

    Raises HTTPException(401) when the header is missing, the token does
    not verify, or its payload has no user id.
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail='No token provided')
    payload = decode_token(credentials.credentials, request.app.state.settings)
    user_id = payload.get('id')
    if user_id is None:
        raise HTTPException(status_code=401, detail='Invalid token payload')
    try:
        return CurrentUser(id=int(user_id), is_admin=bool(payload.get('is_admin', False)))
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail='Invalid token payload')


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail='Forbidden')
    return user
