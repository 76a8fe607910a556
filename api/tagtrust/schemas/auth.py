"""Pydantic schemas for API key registration."""

import uuid
from typing import Optional

from pydantic import Field

from tagtrust.schemas.common import CamelModel


class APIKeyCreate(CamelModel):
    """Request schema for registering a tagging user and receiving a key."""

    email: Optional[str] = Field(None, max_length=255)
    display_name: Optional[str] = Field(None, max_length=100)


class APIKeyResponse(CamelModel):
    """Response schema after a new API key is generated.

    The api_key is shown exactly once. It is stored only as a hash in the
    database and cannot be retrieved again after this response.
    """

    api_key: str
    user_id: uuid.UUID
    message: str = "Store this key securely -- it cannot be retrieved again"


class KeyVerifyResponse(CamelModel):
    valid: bool = True
    user_id: uuid.UUID
    is_admin: bool
