import hashlib
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Security
from fastapi.security import APIKeyHeader
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tagtrust.config import settings
from tagtrust.database import get_db
from tagtrust.errors import PermissionDeniedError
from tagtrust.models.user import User

DbSession = Annotated[AsyncSession, Depends(get_db)]

# API key security schemes, registered in the OpenAPI security definition.
# The optional variant lets public read endpoints accept anonymous callers.
api_key_header = APIKeyHeader(name=settings.api_key_header_name, auto_error=True)
optional_api_key_header = APIKeyHeader(name=settings.api_key_header_name, auto_error=False)


async def _user_for_key(db: AsyncSession, raw_key: str) -> Optional[User]:
    key_hash = hashlib.sha256(raw_key.encode()).hexdigest()
    result = await db.execute(select(User).where(User.api_key_hash == key_hash))
    return result.scalar_one_or_none()


async def get_current_user(
    raw_key: str = Security(api_key_header),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Authenticate a request via X-API-Key header.

    Computes SHA-256 hash of the raw key and looks it up in users.api_key_hash.
    Raises 401 for both missing and invalid keys (no distinction, prevents enumeration).
    """
    user = await _user_for_key(db, raw_key)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return user


async def get_optional_user(
    raw_key: Optional[str] = Security(optional_api_key_header),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """Like get_current_user, but anonymous callers get None.

    A key that is present but invalid is still a 401, so a typo never
    silently downgrades a caller to the public view.
    """
    if not raw_key:
        return None
    user = await _user_for_key(db, raw_key)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]
OptionalUser = Annotated[Optional[User], Depends(get_optional_user)]


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Gate: the admin moderation surface requires the elevated role (403 otherwise)."""
    if not user.is_admin:
        raise PermissionDeniedError("Admin role required")
    return user


AdminUser = Annotated[User, Depends(require_admin)]
