"""Bearer token authentication and role lookup."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bloodlink_api.db.session import get_db
from bloodlink_api.errors import AuthenticationError, AuthorizationError, UpstreamUnavailableError
from bloodlink_api.models import UserProfile
from bloodlink_api.models.profile import ROLE_DONOR, ROLE_HOSPITAL
from bloodlink_api.settings import get_settings

bearer_scheme = HTTPBearer(auto_error=False)
settings = get_settings()


@dataclass(frozen=True)
class Identity:
    """Authenticated caller."""

    user_id: str
    role: str
    email: Optional[str] = None

    @property
    def is_hospital(self) -> bool:
        return self.role == ROLE_HOSPITAL

    @property
    def is_donor(self) -> bool:
        return self.role == ROLE_DONOR


def create_access_token(user_id: str, expires_hours: Optional[int] = None) -> str:
    """Issue a signed access token for a user id."""
    hours = expires_hours if expires_hours is not None else settings.jwt_expiration_hours
    now = datetime.now(timezone.utc)
    claims = {"sub": user_id, "iat": now, "exp": now + timedelta(hours=hours)}
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> str:
    """Validate an access token and return its subject."""
    try:
        claims = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise AuthenticationError(f"Invalid access token: {e}") from e
    user_id = claims.get("sub")
    if not user_id:
        raise AuthenticationError("Access token has no subject")
    return user_id


def resolve_identity(db: Session, token: str) -> Identity:
    """Resolve a bearer token to an identity with its role."""
    user_id = decode_access_token(token)
    try:
        profile = db.query(UserProfile).filter(UserProfile.id == user_id).first()
    except SQLAlchemyError as e:
        raise UpstreamUnavailableError("identity provider", str(e)) from e
    if not profile:
        raise AuthenticationError("Unknown user")
    return Identity(user_id=profile.id, role=profile.role, email=profile.email)


def ensure_role(identity: Optional[Identity], role: str) -> Identity:
    """Raise unless the identity carries the given role."""
    if identity is None:
        raise AuthenticationError("Not authenticated")
    if identity.role != role:
        if role == ROLE_HOSPITAL:
            raise AuthorizationError("Only hospital staff can review certificates")
        raise AuthorizationError(f"Role '{role}' required")
    return identity


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_db),
) -> Identity:
    """Get current identity from the Authorization header."""
    if not credentials or not credentials.credentials:
        raise AuthenticationError("Missing authorization header. Provide a Bearer token.")
    return resolve_identity(db, credentials.credentials)


def require_role(role: str):
    """Dependency factory enforcing a role on the current identity."""

    async def dependency(identity: Identity = Depends(get_current_identity)) -> Identity:
        return ensure_role(identity, role)

    return dependency
