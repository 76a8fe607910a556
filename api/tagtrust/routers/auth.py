"""API key registration for tagging users.

POST /api/v1/keys        -- register a (non-admin) user and return its key once
GET  /api/v1/keys/verify -- echo the caller's identity and role

Admin keys are never issued here; see scripts/create_admin.py.
"""

import hashlib
import secrets

import structlog
from fastapi import APIRouter
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from tagtrust.dependencies import CurrentUser, DbSession
from tagtrust.errors import DuplicateError
from tagtrust.models.user import User
from tagtrust.schemas.auth import APIKeyCreate, APIKeyResponse, KeyVerifyResponse

router = APIRouter(prefix="/api/v1", tags=["auth"])

log = structlog.get_logger(__name__)


def new_api_key() -> tuple[str, str]:
    """Return (raw key, SHA-256 hex digest). Only the digest is persisted."""
    raw_key = secrets.token_urlsafe(32)
    return raw_key, hashlib.sha256(raw_key.encode()).hexdigest()


@router.post("/keys", response_model=APIKeyResponse, status_code=201)
async def register_user(body: APIKeyCreate, db: DbSession) -> APIKeyResponse:
    """Register a tagging user and return a freshly generated API key.

    Returns 409 if the email is already registered.
    """
    if body.email:
        result = await db.execute(select(User).where(User.email == body.email))
        if result.scalar_one_or_none() is not None:
            raise DuplicateError("Email already registered")

    raw_key, key_hash = new_api_key()
    user = User(api_key_hash=key_hash, email=body.email, display_name=body.display_name)
    db.add(user)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise DuplicateError("Email already registered")

    await db.refresh(user)
    log.info("user_registered", user_id=str(user.id))
    return APIKeyResponse(api_key=raw_key, user_id=user.id)


@router.get("/keys/verify", response_model=KeyVerifyResponse)
async def verify_api_key(user: CurrentUser) -> KeyVerifyResponse:
    return KeyVerifyResponse(user_id=user.id, is_admin=user.is_admin)
