"""Bearer token authentication against the identity provider, plus role gates."""

import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from models import DEFAULT_ROLE, UserProfile
from store import IdentityProvider, RoundingStore, get_identity_provider, get_store

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> str:
    """Validate the bearer token.

    Returns:
        The token itself (sign-out needs it).

    Raises:
        HTTPException: 401 if the token is missing or unknown.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Please sign in.",
        )
    if identity.verify_token(credentials.credentials) is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return credentials.credentials


def get_current_user(
    token: str = Depends(get_current_token),
    identity: IdentityProvider = Depends(get_identity_provider),
    store: RoundingStore = Depends(get_store),
) -> UserProfile:
    """Profile of the signed-in user.

    A signed-in account without a profile document gets a Staff profile named
    after its email.
    """
    uid = identity.verify_token(token)
    if uid is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

    profile = store.get_user(uid)
    if profile is None:
        email = identity.email_for(uid) or ""
        logger.info("No profile document for %s, using fallback", uid)
        profile = UserProfile(uid=uid, name=email, email=email, role=DEFAULT_ROLE)
    return profile


def require_admin_or_manager(user: UserProfile = Depends(get_current_user)) -> UserProfile:
    if not (user.is_admin() or user.is_manager()):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admins or Managers only.")
    return user


def require_admin(user: UserProfile = Depends(get_current_user)) -> UserProfile:
    if not user.is_admin():
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admins only.")
    return user
