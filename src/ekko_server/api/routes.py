# src/ekko_server/api/routes.py
"""
Thin HTTP surface over ContentCoordinator. No business logic lives here:
each route forwards already-parsed arguments and renders the result record.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from ekko_server.api.errors import result_response
from ekko_server.core.coordinator import ContentCoordinator
from ekko_server.infra.providers import get_coordinator


# ---------- Pydantic models ----------
class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class UserIn(_Body):
    name: Optional[str] = None
    avatar: Optional[str] = None


class AudioIn(_Body):
    id: str = Field(..., description="Externally assigned audio id")
    language: Optional[str] = Field(None, description="Language tag, e.g. 'en'")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ContentIn(_Body):
    owner_id: str = Field(..., alias="ownerId")
    audio_id: str = Field(..., alias="audioId")
    clip: Dict[str, Any] = Field(..., description="Clip descriptor (sourceUrl, start, end, ...)")


class LikeIn(_Body):
    user_id: str = Field(..., alias="userId")


router = APIRouter()


# ---------- Users & audio ----------

@router.post("/users", tags=["users"])
def create_user(body: UserIn, coordinator: ContentCoordinator = Depends(get_coordinator)) -> JSONResponse:
    return result_response(coordinator.create_user(body.name, body.avatar), status.HTTP_201_CREATED)


@router.post("/audio", tags=["audio"])
def register_audio(body: AudioIn, coordinator: ContentCoordinator = Depends(get_coordinator)) -> JSONResponse:
    result = coordinator.register_audio(body.id, body.language, body.metadata)
    return result_response(result, status.HTTP_201_CREATED)


# ---------- Content ----------

@router.post("/content", tags=["content"])
def create_content(body: ContentIn, coordinator: ContentCoordinator = Depends(get_coordinator)) -> JSONResponse:
    result = coordinator.create_content(body.owner_id, body.audio_id, body.clip)
    return result_response(result, status.HTTP_201_CREATED)


@router.get("/content/{content_id}", tags=["content"])
def get_content(content_id: str, coordinator: ContentCoordinator = Depends(get_coordinator)) -> JSONResponse:
    return result_response(coordinator.get_content(content_id))


@router.post("/content/{content_id}/like", tags=["content"])
def like_content(
    content_id: str,
    body: LikeIn,
    coordinator: ContentCoordinator = Depends(get_coordinator),
) -> JSONResponse:
    return result_response(coordinator.like_content(body.user_id, content_id))


@router.delete("/content/{content_id}", tags=["content"])
def delete_content(content_id: str, coordinator: ContentCoordinator = Depends(get_coordinator)) -> JSONResponse:
    return result_response(coordinator.delete_content(content_id))


@router.get("/content/{content_id}/suggestions", tags=["content"])
def suggest(content_id: str, coordinator: ContentCoordinator = Depends(get_coordinator)) -> JSONResponse:
    return result_response(coordinator.suggest(content_id))


# ---------- Feeds ----------

@router.get("/feed/latest", tags=["feed"])
def latest_feed(
    limit: Optional[int] = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    coordinator: ContentCoordinator = Depends(get_coordinator),
) -> JSONResponse:
    return result_response(coordinator.latest_feed(limit=limit, offset=offset))


@router.get("/feed/trending", tags=["feed"])
def trending_feed(
    limit: Optional[int] = Query(default=None, ge=1),
    coordinator: ContentCoordinator = Depends(get_coordinator),
) -> JSONResponse:
    return result_response(coordinator.trending_feed(limit=limit))
