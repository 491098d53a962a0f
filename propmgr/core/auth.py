"""
Bearer JWT authentication.

Tokens are issued elsewhere. We verify them either with the shared secret
(JWT_SECRET) or against the JWKS published at JWT_JWKS_URL, then load the
user named by the ``sub`` claim.
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlalchemy.orm import Session
import requests

from propmgr.api.deps import get_db
from propmgr.core.config import settings
from propmgr.models.user import User

# Security scheme for Bearer token
security = HTTPBearer()

# Cache for JWKS keys (to avoid fetching on every request)
_jwks_cache = None


def get_jwks():
    """
    Fetch the JSON Web Key Set used to verify asymmetrically signed tokens.

    The document is cached for the life of the process.
    """
    global _jwks_cache

    if _jwks_cache is not None:
        return _jwks_cache

    try:
        response = requests.get(settings.JWT_JWKS_URL, timeout=10)
        response.raise_for_status()
        _jwks_cache = response.json()
        return _jwks_cache
    except requests.RequestException as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch JWKS: {str(e)}",
        )


def _verification_key():
    if settings.JWT_JWKS_URL:
        return get_jwks()
    if settings.JWT_SECRET:
        return settings.JWT_SECRET
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Token verification is not configured",
    )


def verify_token(token: str) -> dict:
    """
    Verify a JWT and return its payload.

    Raises:
        HTTPException: 401 if the token is invalid or expired
    """
    key = _verification_key()
    try:
        return jwt.decode(
            token,
            key,
            algorithms=settings.JWT_ALGORITHMS,
            audience=settings.JWT_AUDIENCE,
            options={"verify_aud": settings.JWT_AUDIENCE is not None},
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid authentication credentials: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """
    FastAPI dependency returning the authenticated principal.

    The ``sub`` claim must name an existing, active user.
    """
    payload = verify_token(credentials.credentials)

    user = None
    sub = payload.get("sub")
    if sub is not None and str(sub).isdigit():
        user = db.query(User).filter(User.id == int(sub)).first()

    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate user",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_role(*roles: str):
    """Dependency factory restricting a route to the given global roles."""
    def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required role: {', '.join(roles)}",
            )
        return current_user
    return role_checker
