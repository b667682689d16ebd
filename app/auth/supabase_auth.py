# app/auth/supabase_auth.py

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from supabase import Client

from app.core.errors import AuthError
from app.core.logging import get_logger
from app.db.supabase_client import get_anon_client

logger = get_logger("AUTH")

# Looks for an "Authorization: Bearer <token>" header.
# tokenUrl is never called; Supabase issues the tokens.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token", auto_error=False)


@dataclass
class AuthUser:
    id: str
    email: Optional[str] = None


def verify_access_token(token: Optional[str], client: Client) -> AuthUser:
    """
    Resolve a Supabase access token to its user.
    Raises AuthError (401) if the token is missing, invalid or expired.
    """
    if not token:
        raise AuthError("Authentication required", headers={"WWW-Authenticate": "Bearer"})

    try:
        response = client.auth.get_user(token)
    except Exception as e:
        logger.warning("Token verification failed", error=str(e))
        raise AuthError("Invalid authentication token", headers={"WWW-Authenticate": "Bearer"})

    user = getattr(response, "user", None)
    if user is None or not getattr(user, "id", None):
        logger.warning("Token verified but no user returned")
        raise AuthError("Invalid authentication token", headers={"WWW-Authenticate": "Bearer"})

    return AuthUser(id=str(user.id), email=getattr(user, "email", None))


def get_auth_client() -> Client:
    return get_anon_client()


def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    client: Client = Depends(get_auth_client),
) -> AuthUser:
    """
    Dependency that returns the authenticated user or raises 401.
    """
    user = verify_access_token(token, client)
    logger.info("User authenticated", user_id=user.id)
    return user
