"""Authentication service: JWT issuing/verification and the REST user dependency."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import BaseModel

from ..config import settings
from ..schemas.user import Identity
from .gateway import PersistenceGateway, get_gateway

bearer_scheme = HTTPBearer(auto_error=False)


class CredentialError(Exception):
    """Generic credential verification failure."""

    reason = "authentication failed"
    code = "AUTH_FAILED"


class TokenExpiredError(CredentialError):
    """The credential was well-formed but its expiry has passed."""

    reason = "token expired"
    code = "TOKEN_EXPIRED"


class TokenInvalidError(CredentialError):
    """The credential is malformed, badly signed or has wrong claims."""

    reason = "invalid token"
    code = "INVALID_TOKEN"


class TokenData(BaseModel):
    """Token payload data schema."""

    user_id: int
    email: Optional[str] = None
    role: Optional[str] = None


def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        data: Claims to encode; "sub" must carry the user id
        expires_delta: Optional custom expiration time delta

    Returns:
        Encoded JWT token string
    """
    to_encode = data.copy()
    if "sub" in to_encode:
        to_encode["sub"] = str(to_encode["sub"])

    now = datetime.now(timezone.utc)
    if expires_delta:
        expire = now + expires_delta
    else:
        expire = now + timedelta(minutes=settings.jwt_expiration_minutes)

    to_encode.update({
        "exp": expire,
        "iat": now,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
    })

    return jwt.encode(
        to_encode,
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )


def verify_access_token(token: str) -> TokenData:
    """
    Verify signature, expiry, issuer and audience of a JWT access token.

    Args:
        token: The JWT token string

    Returns:
        TokenData with the subject user id

    Raises:
        TokenExpiredError: If the token has expired
        TokenInvalidError: If the token is malformed or its claims are wrong
        CredentialError: For any other verification failure
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
        )
    except ExpiredSignatureError as e:
        raise TokenExpiredError(str(e)) from e
    except JWTError as e:
        raise TokenInvalidError(str(e)) from e
    except Exception as e:
        raise CredentialError(str(e)) from e

    subject = payload.get("sub")
    if subject is None:
        raise TokenInvalidError("Token has no subject")

    try:
        user_id = int(subject)
    except (TypeError, ValueError) as e:
        raise TokenInvalidError(f"Invalid subject: {subject!r}") from e

    return TokenData(
        user_id=user_id,
        email=payload.get("email"),
        role=payload.get("role"),
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    gateway: PersistenceGateway = Depends(get_gateway),
) -> Identity:
    """
    Resolve the bearer token of a REST request to an Identity.

    Applies the same rules as the WebSocket handshake: a valid, unexpired
    token whose user still exists and is not deactivated.

    Raises:
        HTTPException: 401 with a reason-specific detail
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="authentication token required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        token_data = verify_access_token(credentials.credentials)
    except CredentialError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.reason,
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await gateway.get_user(token_data.user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="user not found",
        )
    if user.is_deleted:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="account deactivated",
        )

    return gateway.to_identity(user)
