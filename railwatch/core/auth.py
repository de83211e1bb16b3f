"""Bearer token verification for API callers."""

from typing import Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from railwatch.core.config import require_config, settings

security = HTTPBearer()


def decode_token(token: str) -> dict[str, Any]:
    """
    Verify a JWT signed with the shared hub secret and return its claims.

    Args:
        token: Encoded JWT

    Returns:
        JWT payload dictionary

    Raises:
        HTTPException: 401 if the token is invalid or expired
    """
    require_config("JWT_SECRET_KEY")
    options = {"verify_aud": settings.JWT_AUDIENCE is not None}
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET_KEY,  # type: ignore[arg-type]
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            options=options,
        )
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid authentication credentials: {e!s}",
        ) from e


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    """
    Resolve the caller's user id from the bearer token.

    Raises:
        HTTPException: 401 if the token is invalid or has no 'sub' claim
    """
    payload = decode_token(credentials.credentials)
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token missing 'sub' claim",
        )
    return str(user_id)
