"""Pydantic schemas for the Entity Directory."""

import uuid
from datetime import datetime

from tagtrust.schemas.common import CamelModel


class EntityResponse(CamelModel):
    id: uuid.UUID
    canonical_name: str
    normalized_name: str
    approved_tag_count: int
    created_at: datetime
