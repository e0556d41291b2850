from __future__ import annotations

import logging
from typing import Annotated, Any

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import ExpiredSignatureError, InvalidTokenError

from .contracts import ANONYMOUS, Caller, CallerRole
from .settings import settings

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)
AuthCredentials = Annotated[HTTPAuthorizationCredentials | None, Depends(security)]

# roles issued by the accounts service -> caller roles
ROLE_ALIASES = {
    "admin": CallerRole.ADMIN,
    "superadmin": CallerRole.ADMIN,
    "vendor": CallerRole.VENDOR,
    "customer": CallerRole.CUSTOMER,
    "user": CallerRole.CUSTOMER,
}


class TokenVerifier:
    def __init__(self, secret: str | None = None, algorithm: str | None = None) -> None:
        self.secret = secret or settings.JWT_SECRET
        self.algorithm = algorithm or settings.JWT_ALGORITHM

    def decode(self, token: str) -> dict[str, Any] | None:
        """Decoded claims, or None for any token that does not verify."""
        try:
            return jwt.decode(token, key=self.secret, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            logger.info("Ignoring expired bearer token")
        except InvalidTokenError as exc:
            logger.info("Ignoring invalid bearer token: %s", type(exc).__name__)
        return None

    def caller_from_token(self, token: str | None) -> Caller:
        """Resolve the caller; anything unverifiable is anonymous, never an error."""
        if not token:
            return ANONYMOUS
        claims = self.decode(token)
        if not claims:
            return ANONYMOUS
        user_id = claims.get("userId") or claims.get("sub")
        role = ROLE_ALIASES.get(str(claims.get("role") or "").lower(), CallerRole.CUSTOMER)
        if not user_id:
            return ANONYMOUS
        return Caller(role=role, user_id=str(user_id))


token_verifier = TokenVerifier()


async def optional_caller(credentials: AuthCredentials) -> Caller:
    """FastAPI dependency resolving the optional bearer token to a `Caller`."""
    token = credentials.credentials if credentials else None
    return token_verifier.caller_from_token(token)


CurrentCaller = Annotated[Caller, Depends(optional_caller)]

__all__ = ["CurrentCaller", "TokenVerifier", "optional_caller", "token_verifier"]
