"""Entity Directory lookup.

GET /api/v1/entities?q=   -- prefix search over promoted entities
GET /api/v1/entities/{id} -- one entity
"""

import uuid

from fastapi import APIRouter, Query

from tagtrust.dependencies import DbSession
from tagtrust.errors import NotFoundError
from tagtrust.middleware.rate_limiter import ReadRateLimit
from tagtrust.schemas.entity import EntityResponse
from tagtrust.services.entities import get_entity, search_entities

router = APIRouter(prefix="/api/v1", tags=["entities"])


@router.get("/entities", response_model=list[EntityResponse])
async def list_entities(
    db: DbSession,
    _rate: ReadRateLimit,
    q: str = Query(default="", max_length=200),
    limit: int = Query(default=20, ge=1, le=100),
) -> list[EntityResponse]:
    entities = await search_entities(db, q, limit=limit)
    return [EntityResponse.model_validate(entity) for entity in entities]


@router.get("/entities/{entity_id}", response_model=EntityResponse)
async def read_entity(entity_id: uuid.UUID, db: DbSession, _rate: ReadRateLimit) -> EntityResponse:
    entity = await get_entity(db, entity_id)
    if entity is None:
        raise NotFoundError("Entity not found")
    return EntityResponse.model_validate(entity)
