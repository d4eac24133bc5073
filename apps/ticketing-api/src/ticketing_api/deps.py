"""API dependencies: database session, auth claims and external clients."""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from basecore.db import get_db
from basecore.redis import get_redis_client
from basecore.settings import get_settings
from basecore.storage import StorageBackend, get_storage
from messaging_email.providers import EmailProvider, get_email_provider
from messaging_whatsapp.providers import WhatsAppProvider, get_provider
from messaging_whatsapp.streams.producer import BlastJobProducer

from ticketing_api.security import decode_access_token

ADMIN_ROLE = "admin"

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class UserClaims:
    """User information extracted from JWT token.

    Users live in the auth service; the API only needs the claims.
    """
    id: UUID
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[UserClaims]:
    """
    Get current user from the bearer token if present and valid.
    Returns None if not authenticated (doesn't raise exception).
    """
    if credentials is None:
        return None

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        return None

    user_id: Optional[str] = payload.get("sub")
    email: Optional[str] = payload.get("email")
    role: str = payload.get("role") or "user"

    if not user_id or not email:
        return None

    try:
        return UserClaims(id=UUID(user_id), email=email, role=role)
    except ValueError:
        return None


async def require_user(user: Optional[UserClaims] = Depends(get_optional_user)) -> UserClaims:
    if user is None:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def require_admin(user: UserClaims = Depends(require_user)) -> UserClaims:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def get_storage_backend() -> StorageBackend:
    return get_storage()


async def get_whatsapp_provider():
    """Yield a WhatsApp provider and close its HTTP client after the request."""
    provider: WhatsAppProvider = get_provider()
    try:
        yield provider
    finally:
        await provider.close()


async def get_mail_provider():
    provider: EmailProvider = get_email_provider()
    try:
        yield provider
    finally:
        await provider.close()


def get_blast_producer() -> BlastJobProducer:
    return BlastJobProducer(get_redis_client())


def get_email_sender_address() -> str:
    return get_settings().EMAIL_FROM


__all__ = [
    "UserClaims",
    "get_db",
    "get_optional_user",
    "require_user",
    "require_admin",
    "get_storage_backend",
    "get_whatsapp_provider",
    "get_mail_provider",
    "get_blast_producer",
    "get_email_sender_address",
]
